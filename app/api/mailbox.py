from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import require_actor
from app.db import SessionLocal
from app.schemas.workflow import MailboxResponse
from app.services.actor import Actor
from app.services.workflow import workflow

router = APIRouter(prefix="/workflow/mailbox", tags=["workflow-mailbox"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("/{kind}", response_model=MailboxResponse)
def list_mailbox(
    kind: str,
    org_id: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    variant: str | None = None,
    q: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=25, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.list_mailbox(
        db,
        actor,
        kind,
        org_scope=org_id,
        status=status_filter,
        variant=variant,
        q=q,
        limit=limit,
        offset=offset,
    )
