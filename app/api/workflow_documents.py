from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import require_actor
from app.db import SessionLocal
from app.schemas.workflow import (
    CoverDecisionRequest,
    CoverUploadRequest,
    DocumentCreate,
    DocumentRead,
    DocumentUpdate,
    DownloadLocatorResponse,
    HistoryRead,
    NoteRequest,
    RequiredNoteRequest,
)
from app.services.actor import Actor
from app.services.workflow import workflow

router = APIRouter(prefix="/workflow/documents", tags=["workflow-documents"])


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ------------------------------------------------------------------
# Drafts
# ------------------------------------------------------------------


@router.post("", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
def create_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.create(db, actor, payload)


@router.get("/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.get(db, actor, document_id)


@router.patch("/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.update(db, actor, document_id, payload)


# ------------------------------------------------------------------
# Transitions
# ------------------------------------------------------------------


@router.post("/{document_id}/submit", response_model=DocumentRead)
def submit_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.submit(db, actor, document_id)


@router.post("/{document_id}/approve", response_model=DocumentRead)
def approve_document(
    document_id: str,
    payload: NoteRequest | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    note = payload.note if payload else None
    return workflow.approve(db, actor, document_id, note)


@router.post("/{document_id}/reject", response_model=DocumentRead)
def reject_document(
    document_id: str,
    payload: RequiredNoteRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.reject(db, actor, document_id, payload.note)


@router.post("/{document_id}/revision", response_model=DocumentRead)
def request_revision(
    document_id: str,
    payload: RequiredNoteRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.request_revision(db, actor, document_id, payload.note)


@router.post("/{document_id}/resubmit", response_model=DocumentRead)
def resubmit_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.resubmit(db, actor, document_id)


@router.post("/{document_id}/complete", response_model=DocumentRead)
def complete_document(
    document_id: str,
    payload: NoteRequest | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    note = payload.note if payload else None
    return workflow.complete(db, actor, document_id, note)


# ------------------------------------------------------------------
# Cover
# ------------------------------------------------------------------


@router.post("/{document_id}/cover", response_model=DocumentRead)
def upload_cover(
    document_id: str,
    payload: CoverUploadRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.upload_cover(db, actor, document_id, payload.cover_key)


@router.post("/{document_id}/cover/decision", response_model=DocumentRead)
def decide_cover(
    document_id: str,
    payload: CoverDecisionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.decide_cover(
        db, actor, document_id, payload.approve, payload.note
    )


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


@router.get("/{document_id}/history", response_model=list[HistoryRead])
def document_history(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.history(db, actor, document_id)


@router.get("/{document_id}/download", response_model=DownloadLocatorResponse)
def download_locator(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    return workflow.get_download_locator(db, actor, document_id)
