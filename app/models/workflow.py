import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DocumentVariant(enum.Enum):
    activity = "activity"
    report = "report"
    letter = "letter"


class DocumentState(enum.Enum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    revision_requested = "revision_requested"
    completed = "completed"


class CoverState(enum.Enum):
    none = "none"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class WorkflowAction(enum.Enum):
    create = "create"
    update = "update"
    submit = "submit"
    approve = "approve"
    reject = "reject"
    revise = "revise"
    resubmit = "resubmit"
    complete = "complete"
    upload_cover = "upload_cover"
    approve_cover = "approve_cover"
    reject_cover = "reject_cover"


class MailboxKind(enum.Enum):
    inbox = "inbox"
    outbox = "outbox"
    archive = "archive"
    cover = "cover"


class AudienceType(enum.Enum):
    org = "org"
    org_role = "org_role"
    global_role = "global_role"


TERMINAL_STATES = frozenset(
    {DocumentState.approved, DocumentState.rejected, DocumentState.completed}
)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class WorkflowDocument(Base):
    __tablename__ = "workflow_documents"
    __table_args__ = (
        Index("ix_workflow_documents_origin_org_id", "origin_org_id"),
        Index("ix_workflow_documents_target_org_id", "target_org_id"),
        Index("ix_workflow_documents_state", "state"),
        Index("ix_workflow_documents_cover_state", "cover_state"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    variant: Mapped[DocumentVariant] = mapped_column(
        Enum(DocumentVariant), nullable=False
    )
    origin_org_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    target_org_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    # Report -> Activity link
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workflow_documents.id")
    )

    state: Mapped[DocumentState] = mapped_column(
        Enum(DocumentState), nullable=False, default=DocumentState.draft
    )
    revision_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    decision_note: Mapped[str | None] = mapped_column(Text)

    subject: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    number: Mapped[str | None] = mapped_column(String(128))
    recipient_role: Mapped[str | None] = mapped_column(String(255))
    file_key: Mapped[str | None] = mapped_column(String(1024))
    payload: Mapped[dict | None] = mapped_column(JSON)

    cover_state: Mapped[CoverState] = mapped_column(
        Enum(CoverState), nullable=False, default=CoverState.none
    )
    cover_key: Mapped[str | None] = mapped_column(String(1024))
    cover_note: Mapped[str | None] = mapped_column(Text)
    cover_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    cover_decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cover_decided_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    submitted_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    last_actor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    parent = relationship("WorkflowDocument", remote_side="WorkflowDocument.id")
    history = relationship(
        "WorkflowHistory",
        back_populates="document",
        order_by="WorkflowHistory.sequence",
    )
    routes = relationship("DocumentRoute", back_populates="document")


# ---------------------------------------------------------------------------
# History (append-only)
# ---------------------------------------------------------------------------


class WorkflowHistory(Base):
    __tablename__ = "workflow_history"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "sequence", name="uq_workflow_history_document_sequence"
        ),
        Index("ix_workflow_history_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workflow_documents.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    revision_no: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    action: Mapped[WorkflowAction] = mapped_column(
        Enum(WorkflowAction), nullable=False
    )
    # document state or cover state, depending on the action
    from_state: Mapped[str] = mapped_column(String(40), nullable=False)
    to_state: Mapped[str] = mapped_column(String(40), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    document = relationship("WorkflowDocument", back_populates="history")


# ---------------------------------------------------------------------------
# Mailbox routes (materialized view, rebuilt per transition)
# ---------------------------------------------------------------------------


class DocumentRoute(Base):
    __tablename__ = "document_routes"
    __table_args__ = (
        Index("ix_document_routes_document_id", "document_id"),
        Index(
            "ix_document_routes_lookup",
            "mailbox",
            "audience_type",
            "org_id",
            "role_code",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workflow_documents.id"), nullable=False
    )
    mailbox: Mapped[MailboxKind] = mapped_column(Enum(MailboxKind), nullable=False)
    audience_type: Mapped[AudienceType] = mapped_column(
        Enum(AudienceType), nullable=False
    )
    org_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    role_code: Mapped[str | None] = mapped_column(String(64))

    document = relationship("WorkflowDocument", back_populates="routes")


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_id", "recipient_id"),
        Index("ix_notifications_is_read", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    event_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
