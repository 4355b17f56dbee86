from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import require_actor
from app.db import SessionLocal
from app.schemas.common import ListResponse
from app.schemas.notification import (
    MarkReadRequest,
    NotificationRead,
    UnreadCountResponse,
)
from app.services.actor import Actor
from app.services.notification import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    db: Session = Depends(get_db), actor: Actor = Depends(require_actor)
):
    count = notifications.unread_count(db, actor.id)
    return {"count": count}


@router.get("", response_model=ListResponse[NotificationRead])
def list_notifications(
    event_type: str | None = None,
    is_read: bool | None = None,
    limit: int = Query(default=25, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return notifications.list_response(
        db, actor.id, event_type, is_read, limit, offset
    )


@router.post("/mark-read")
def mark_read(
    payload: MarkReadRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    count = notifications.mark_read(
        db, actor.id, [str(nid) for nid in payload.notification_ids]
    )
    return {"marked": count}


@router.post("/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db), actor: Actor = Depends(require_actor)
):
    count = notifications.mark_all_read(db, actor.id)
    return {"marked": count}


@router.get("/{notification_id}", response_model=NotificationRead)
def get_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return notifications.get(db, notification_id, actor.id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def dismiss_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    notifications.dismiss(db, notification_id, actor.id)
