from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.workflow import (
    CoverState,
    DocumentState,
    DocumentVariant,
    WorkflowAction,
)


class DocumentBase(BaseModel):
    subject: str = Field(default="", max_length=500)
    number: str | None = Field(default=None, max_length=128)
    recipient_role: str | None = Field(default=None, max_length=255)
    file_key: str | None = Field(default=None, max_length=1024)
    payload: dict | None = None


class DocumentCreate(DocumentBase):
    variant: DocumentVariant
    origin_org_id: UUID
    target_org_id: UUID | None = None
    parent_id: UUID | None = None


class DocumentUpdate(BaseModel):
    subject: str | None = Field(default=None, max_length=500)
    number: str | None = Field(default=None, max_length=128)
    recipient_role: str | None = Field(default=None, max_length=255)
    file_key: str | None = Field(default=None, max_length=1024)
    payload: dict | None = None


class DocumentRead(DocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    variant: DocumentVariant
    origin_org_id: UUID
    target_org_id: UUID | None = None
    parent_id: UUID | None = None
    state: DocumentState
    revision_no: int
    decision_note: str | None = None
    cover_state: CoverState
    cover_key: str | None = None
    cover_note: str | None = None
    cover_submitted_at: datetime | None = None
    cover_decided_at: datetime | None = None
    cover_decided_by: UUID | None = None
    created_by: UUID
    submitted_by: UUID | None = None
    last_actor_id: UUID | None = None
    created_at: datetime
    submitted_at: datetime | None = None
    decided_at: datetime | None = None
    updated_at: datetime


class NoteRequest(BaseModel):
    note: str | None = Field(default=None, max_length=4000)


class RequiredNoteRequest(BaseModel):
    # blank notes are rejected by the state machine guard
    note: str = Field(max_length=4000)


class CoverUploadRequest(BaseModel):
    cover_key: str = Field(min_length=1, max_length=1024)


class CoverDecisionRequest(BaseModel):
    approve: bool
    note: str | None = Field(default=None, max_length=4000)


class HistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    sequence: int
    revision_no: int
    actor_id: UUID
    action: WorkflowAction
    from_state: str
    to_state: str
    note: str | None = None
    created_at: datetime


class MailboxResponse(BaseModel):
    items: list[DocumentRead]
    total: int
    limit: int
    offset: int


class DownloadLocatorResponse(BaseModel):
    document_id: UUID
    locator: str
