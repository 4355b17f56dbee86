"""workflow documents, history, routes and notifications

Revision ID: 3f7a9c21d0b4
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "3f7a9c21d0b4"
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "documentvariant": ("activity", "report", "letter"),
    "documentstate": (
        "draft",
        "pending",
        "approved",
        "rejected",
        "revision_requested",
        "completed",
    ),
    "coverstate": ("none", "pending", "approved", "rejected"),
    "workflowaction": (
        "create",
        "update",
        "submit",
        "approve",
        "reject",
        "revise",
        "resubmit",
        "complete",
        "upload_cover",
        "approve_cover",
        "reject_cover",
    ),
    "mailboxkind": ("inbox", "outbox", "archive", "cover"),
    "audiencetype": ("org", "org_role", "global_role"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # --- Enums ---
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- Documents (self-referential FK for report -> activity) ---
    op.create_table(
        "workflow_documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("variant", _enum("documentvariant"), nullable=False),
        sa.Column("origin_org_id", sa.UUID(), nullable=False),
        sa.Column("target_org_id", sa.UUID(), nullable=True),
        sa.Column("parent_id", sa.UUID(), nullable=True),
        sa.Column("state", _enum("documentstate"), nullable=False),
        sa.Column("revision_no", sa.Integer(), nullable=False),
        sa.Column("decision_note", sa.Text(), nullable=True),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("number", sa.String(length=128), nullable=True),
        sa.Column("recipient_role", sa.String(length=255), nullable=True),
        sa.Column("file_key", sa.String(length=1024), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("cover_state", _enum("coverstate"), nullable=False),
        sa.Column("cover_key", sa.String(length=1024), nullable=True),
        sa.Column("cover_note", sa.Text(), nullable=True),
        sa.Column("cover_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cover_decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cover_decided_by", sa.UUID(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("submitted_by", sa.UUID(), nullable=True),
        sa.Column("last_actor_id", sa.UUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["parent_id"], ["workflow_documents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_workflow_documents_origin_org_id", "workflow_documents", ["origin_org_id"]
    )
    op.create_index(
        "ix_workflow_documents_target_org_id", "workflow_documents", ["target_org_id"]
    )
    op.create_index("ix_workflow_documents_state", "workflow_documents", ["state"])
    op.create_index(
        "ix_workflow_documents_cover_state", "workflow_documents", ["cover_state"]
    )

    # --- History (append-only) ---
    op.create_table(
        "workflow_history",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("revision_no", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=False),
        sa.Column("action", _enum("workflowaction"), nullable=False),
        sa.Column("from_state", sa.String(length=40), nullable=False),
        sa.Column("to_state", sa.String(length=40), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["workflow_documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id", "sequence", name="uq_workflow_history_document_sequence"
        ),
    )
    op.create_index(
        "ix_workflow_history_document_id", "workflow_history", ["document_id"]
    )

    # --- Mailbox routes ---
    op.create_table(
        "document_routes",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("mailbox", _enum("mailboxkind"), nullable=False),
        sa.Column("audience_type", _enum("audiencetype"), nullable=False),
        sa.Column("org_id", sa.UUID(), nullable=True),
        sa.Column("role_code", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["workflow_documents.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_document_routes_document_id", "document_routes", ["document_id"]
    )
    op.create_index(
        "ix_document_routes_lookup",
        "document_routes",
        ["mailbox", "audience_type", "org_id", "role_code"],
    )

    # --- Notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("recipient_id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notifications_recipient_id", "notifications", ["recipient_id"]
    )
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])


def downgrade() -> None:
    op.drop_index("ix_notifications_is_read", table_name="notifications")
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_document_routes_lookup", table_name="document_routes")
    op.drop_index("ix_document_routes_document_id", table_name="document_routes")
    op.drop_table("document_routes")

    op.drop_index("ix_workflow_history_document_id", table_name="workflow_history")
    op.drop_table("workflow_history")

    op.drop_index("ix_workflow_documents_cover_state", table_name="workflow_documents")
    op.drop_index("ix_workflow_documents_state", table_name="workflow_documents")
    op.drop_index(
        "ix_workflow_documents_target_org_id", table_name="workflow_documents"
    )
    op.drop_index(
        "ix_workflow_documents_origin_org_id", table_name="workflow_documents"
    )
    op.drop_table("workflow_documents")

    for name in reversed(list(ENUMS)):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
