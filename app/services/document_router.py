"""Mailbox routing.

``document_routes`` holds, per document, the audiences that should see it in
the inbox, cover and archive mailboxes. Rows are rebuilt inside the same
transaction as every state change, so a committed transition can never leave
a document in two mutually exclusive mailboxes for one actor.
"""

import logging

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from app.errors import PermissionDenied, ValidationError
from app.models.workflow import (
    TERMINAL_STATES,
    AudienceType,
    CoverState,
    DocumentRoute,
    DocumentState,
    DocumentVariant,
    MailboxKind,
    WorkflowAction,
    WorkflowDocument,
)
from app.services.actor import Actor
from app.services.common import apply_pagination, coerce_uuid, escape_like
from app.services.role_gate import Audience, RoleGate
from app.services.workflow_machine import policy_for

logger = logging.getLogger(__name__)

_ORDERING = {
    MailboxKind.inbox: WorkflowDocument.submitted_at,
    MailboxKind.cover: WorkflowDocument.cover_submitted_at,
    MailboxKind.outbox: WorkflowDocument.created_at,
    MailboxKind.archive: WorkflowDocument.decided_at,
}


def _parse_enum(enum_cls, value, field: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value}",
            details={"field": field, "allowed": [e.value for e in enum_cls]},
        )


class DocumentRouter:
    @staticmethod
    def build_routes(
        document: WorkflowDocument,
    ) -> list[tuple[MailboxKind, Audience]]:
        routes: list[tuple[MailboxKind, Audience]] = []
        if document.state == DocumentState.pending:
            for audience in RoleGate.reviewer_audiences(document):
                routes.append((MailboxKind.inbox, audience))
        if (
            policy_for(document.variant).uses_cover
            and document.cover_state == CoverState.pending
            and document.state != DocumentState.draft
        ):
            for audience in RoleGate.reviewer_audiences(
                document, WorkflowAction.approve_cover
            ):
                routes.append((MailboxKind.cover, audience))
        if document.state in TERMINAL_STATES:
            audiences = RoleGate.reviewer_audiences(document) + [
                Audience(AudienceType.org, document.origin_org_id)
            ]
            for audience in audiences:
                routes.append((MailboxKind.archive, audience))
        return list(dict.fromkeys(routes))

    @staticmethod
    def refresh_routes(db: Session, document: WorkflowDocument) -> None:
        """Invalidate and rebuild routes for one document; caller commits."""
        db.execute(
            delete(DocumentRoute).where(DocumentRoute.document_id == document.id)
        )
        for mailbox, audience in DocumentRouter.build_routes(document):
            db.add(
                DocumentRoute(
                    document_id=document.id,
                    mailbox=mailbox,
                    audience_type=audience.type,
                    org_id=audience.org_id,
                    role_code=audience.role_code,
                )
            )
        logger.debug("Refreshed mailbox routes for document %s", document.id)

    @staticmethod
    def _audience_clause(actor: Actor):
        clauses = []
        if actor.global_roles:
            clauses.append(
                and_(
                    DocumentRoute.audience_type == AudienceType.global_role,
                    DocumentRoute.role_code.in_(sorted(actor.global_roles)),
                )
            )
        if actor.memberships:
            clauses.append(
                and_(
                    DocumentRoute.audience_type == AudienceType.org,
                    DocumentRoute.org_id.in_(list(actor.org_ids)),
                )
            )
            for membership in actor.memberships:
                clauses.append(
                    and_(
                        DocumentRoute.audience_type == AudienceType.org_role,
                        DocumentRoute.org_id == membership.org_id,
                        DocumentRoute.role_code == membership.role,
                    )
                )
        return or_(*clauses)

    @staticmethod
    def mailbox(
        db: Session,
        actor: Actor,
        kind: MailboxKind | str,
        org_scope=None,
        status: str | None = None,
        variant: str | None = None,
        q: str | None = None,
        limit: int = 25,
        offset: int = 0,
    ) -> tuple[list[WorkflowDocument], int]:
        if isinstance(kind, str):
            kind = _parse_enum(MailboxKind, kind, "kind")
        if actor.is_anonymous:
            raise PermissionDenied(
                "Actor has no organization membership or role",
                details={"mailbox": kind.value},
            )
        state = _parse_enum(DocumentState, status, "status")
        variant_value = _parse_enum(DocumentVariant, variant, "variant")
        org_uuid = coerce_uuid(org_scope)

        stmt = select(WorkflowDocument)
        if kind == MailboxKind.outbox:
            if org_uuid is None:
                raise ValidationError(
                    "org_id is required for the outbox", details={"field": "org_id"}
                )
            if not actor.belongs_to(org_uuid) and not RoleGate.is_full_admin(actor):
                raise PermissionDenied(
                    "Not a member of this organization",
                    details={"org_id": str(org_uuid)},
                )
            stmt = stmt.where(WorkflowDocument.origin_org_id == org_uuid)
            if not actor.belongs_to(org_uuid):
                # drafts stay with their origin org
                stmt = stmt.where(WorkflowDocument.state != DocumentState.draft)
        else:
            routed = select(DocumentRoute.document_id).where(
                DocumentRoute.mailbox == kind,
                DocumentRouter._audience_clause(actor),
            )
            stmt = stmt.where(WorkflowDocument.id.in_(routed))
            if org_uuid is not None:
                stmt = stmt.where(WorkflowDocument.origin_org_id == org_uuid)

        if state is not None:
            stmt = stmt.where(WorkflowDocument.state == state)
        if variant_value is not None:
            stmt = stmt.where(WorkflowDocument.variant == variant_value)
        if q:
            pattern = f"%{escape_like(q.strip())}%"
            stmt = stmt.where(
                or_(
                    WorkflowDocument.subject.ilike(pattern, escape="\\"),
                    WorkflowDocument.number.ilike(pattern, escape="\\"),
                    WorkflowDocument.recipient_role.ilike(pattern, escape="\\"),
                )
            )

        total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = stmt.order_by(
            _ORDERING[kind].desc(),
            WorkflowDocument.created_at.desc(),
            WorkflowDocument.id,
        )
        items = list(db.scalars(apply_pagination(stmt, limit, offset)).all())
        return items, total


document_router = DocumentRouter()
