"""Workflow operations.

Every state-changing call follows the same path: load, visibility, RoleGate,
state machine, compare-and-set write, route refresh and history append in the
same transaction, commit, then event. Events are only published for committed
transitions.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.metrics import WORKFLOW_CONFLICTS, WORKFLOW_TRANSITIONS
from app.models.workflow import (
    DocumentVariant,
    WorkflowAction,
    WorkflowDocument,
    WorkflowHistory,
)
from app.schemas.workflow import DocumentCreate, DocumentUpdate
from app.services.actor import Actor
from app.services.common import coerce_document_id
from app.services.cover_subflow import cover_subflow
from app.services.document_router import document_router
from app.services.event import EventType, publish_event
from app.services.revision_tracker import revision_tracker
from app.services.role_gate import role_gate
from app.services.storage import storage
from app.services.workflow_machine import (
    EDITABLE_STATES,
    WorkflowStateMachine,
    policy_for,
)

logger = logging.getLogger(__name__)

_EVENTS = {
    WorkflowAction.submit: EventType.document_submitted,
    WorkflowAction.approve: EventType.document_approved,
    WorkflowAction.reject: EventType.document_rejected,
    WorkflowAction.revise: EventType.document_revision_requested,
    WorkflowAction.resubmit: EventType.document_resubmitted,
    WorkflowAction.complete: EventType.document_completed,
    WorkflowAction.upload_cover: EventType.cover_uploaded,
    WorkflowAction.approve_cover: EventType.cover_approved,
    WorkflowAction.reject_cover: EventType.cover_rejected,
}

# the actor gets a receipt; everything else notifies the author side
_SELF_NOTIFIED = frozenset(
    {WorkflowAction.submit, WorkflowAction.resubmit, WorkflowAction.upload_cover}
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _fetch(db: Session, doc_id) -> WorkflowDocument:
    document = db.get(WorkflowDocument, coerce_document_id(doc_id))
    if not document:
        raise NotFoundError("Document not found")
    return document


def _ensure_visible(actor: Actor, document: WorkflowDocument) -> None:
    # hidden documents are reported as missing
    if not role_gate.can_view(actor, document):
        raise NotFoundError("Document not found")


def _load(db: Session, actor: Actor, doc_id) -> WorkflowDocument:
    document = _fetch(db, doc_id)
    _ensure_visible(actor, document)
    return document


def _recipients(
    document: WorkflowDocument, actor: Actor, action: WorkflowAction
) -> list[str]:
    if action in _SELF_NOTIFIED:
        return [str(actor.id)]
    candidates = [document.created_by, document.submitted_by]
    return [
        str(person_id)
        for person_id in dict.fromkeys(candidates)
        if person_id and person_id != actor.id
    ]


def _compare_and_set(
    db: Session,
    document: WorkflowDocument,
    action: WorkflowAction,
    values: dict,
    cover: bool = False,
) -> None:
    """Single conditional UPDATE keyed on the state the caller validated.

    Zero affected rows means another writer got there first: the
    transaction is rolled back and ConflictError raised.
    """
    document_id = document.id
    variant = document.variant.value
    stmt = update(WorkflowDocument).where(WorkflowDocument.id == document.id)
    if cover:
        expected = document.cover_state
        stmt = stmt.where(WorkflowDocument.cover_state == expected)
    else:
        expected = document.state
        stmt = stmt.where(
            WorkflowDocument.state == expected,
            WorkflowDocument.revision_no == document.revision_no,
        )
    stmt = stmt.values(**values).execution_options(synchronize_session=False)
    result = db.execute(stmt)
    if result.rowcount != 1:
        db.rollback()
        WORKFLOW_CONFLICTS.labels(variant=variant).inc()
        logger.warning(
            "Conflict on %s for document %s",
            action.value,
            document_id,
            extra={
                "document_id": str(document_id),
                "variant": variant,
                "action": action.value,
            },
        )
        raise ConflictError(
            "Document was changed by another request",
            details={"expected_state": expected.value},
        )
    db.refresh(document)


def _finish(
    db: Session,
    document: WorkflowDocument,
    actor: Actor,
    action: WorkflowAction,
    from_state: str,
    to_state: str,
    note: str | None,
) -> WorkflowDocument:
    document_router.refresh_routes(db, document)
    revision_tracker.record(
        db,
        document,
        actor,
        action,
        from_state,
        to_state,
        document.revision_no,
        note,
    )
    db.commit()
    db.refresh(document)

    variant = document.variant.value
    WORKFLOW_TRANSITIONS.labels(variant=variant, action=action.value).inc()
    logger.info(
        "Document %s %s: %s -> %s",
        document.id,
        action.value,
        from_state,
        to_state,
        extra={
            "document_id": str(document.id),
            "variant": variant,
            "action": action.value,
            "actor_id": str(actor.id),
            "from_state": from_state,
            "to_state": to_state,
        },
    )
    publish_event(
        _EVENTS[action],
        entity_type=variant,
        entity_id=document.id,
        actor_id=actor.id,
        document_id=document.id,
        payload={
            "recipient_ids": _recipients(document, actor, action),
            "subject": document.subject,
            "note": note,
            "state": to_state,
            "revision_no": document.revision_no,
        },
    )
    return document


class WorkflowService:
    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    @staticmethod
    def create(db: Session, actor: Actor, payload: DocumentCreate) -> WorkflowDocument:
        policy = policy_for(payload.variant)
        data = payload.model_dump()
        document = WorkflowDocument(**data, created_by=actor.id, last_actor_id=actor.id)
        role_gate.require(actor, WorkflowAction.create, document)
        if not actor.belongs_to(payload.origin_org_id):
            raise PermissionDenied(
                "Documents are created by members of the origin organization",
                details={
                    "action": WorkflowAction.create.value,
                    "required_roles": [f"member:{payload.origin_org_id}"],
                },
            )

        if payload.target_org_id is not None:
            if not policy.allows_target_org:
                raise ValidationError(
                    f"A {policy.variant.value} has no target organization",
                    details={"field": "target_org_id"},
                )
            if payload.target_org_id == payload.origin_org_id:
                raise ValidationError(
                    "Target organization must differ from the origin",
                    details={"field": "target_org_id"},
                )
        if payload.parent_id is not None:
            if not policy.allows_parent:
                raise ValidationError(
                    f"A {policy.variant.value} cannot reference a parent",
                    details={"field": "parent_id"},
                )
            parent = db.get(WorkflowDocument, payload.parent_id)
            if (
                not parent
                or parent.variant != DocumentVariant.activity
                or parent.origin_org_id != payload.origin_org_id
            ):
                raise ValidationError(
                    "Parent must be an activity of the same organization",
                    details={"field": "parent_id"},
                )

        db.add(document)
        db.commit()
        db.refresh(document)
        logger.info(
            "Created %s %s",
            document.variant.value,
            document.id,
            extra={
                "document_id": str(document.id),
                "variant": document.variant.value,
                "action": WorkflowAction.create.value,
                "actor_id": str(actor.id),
            },
        )
        publish_event(
            EventType.document_created,
            entity_type=document.variant.value,
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
            payload={"recipient_ids": [], "subject": document.subject},
        )
        return document

    @staticmethod
    def get(db: Session, actor: Actor, doc_id) -> WorkflowDocument:
        return _load(db, actor, doc_id)

    @staticmethod
    def update(
        db: Session, actor: Actor, doc_id, payload: DocumentUpdate
    ) -> WorkflowDocument:
        """Edit content while the author still holds the document."""
        document = _load(db, actor, doc_id)
        role_gate.require(actor, WorkflowAction.update, document)
        if document.state not in EDITABLE_STATES:
            machine = WorkflowStateMachine.for_document(document)
            raise InvalidTransitionError(
                f"Cannot edit a {document.variant.value} "
                f"in state {document.state.value}",
                details={
                    "current_state": document.state.value,
                    "action": WorkflowAction.update.value,
                    "allowed_actions": [
                        a.value for a in machine.allowed_actions(document.state)
                    ],
                },
            )
        data = payload.model_dump(exclude_unset=True)
        if "subject" in data and data["subject"] is None:
            data["subject"] = ""
        if not data:
            return document
        data["last_actor_id"] = actor.id
        data["updated_at"] = _now()
        _compare_and_set(db, document, WorkflowAction.update, data)
        db.commit()
        db.refresh(document)
        logger.info("Updated %s %s", document.variant.value, document.id)
        publish_event(
            EventType.document_updated,
            entity_type=document.variant.value,
            entity_id=document.id,
            actor_id=actor.id,
            document_id=document.id,
            payload={"recipient_ids": [], "subject": document.subject},
        )
        return document

    # ------------------------------------------------------------------
    # Document transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(
        db: Session,
        actor: Actor,
        doc_id,
        action: WorkflowAction,
        note: str | None = None,
    ) -> WorkflowDocument:
        document = _load(db, actor, doc_id)
        role_gate.require(actor, action, document)
        machine = WorkflowStateMachine.for_document(document)
        target = machine.transition(document, action, note)

        from_state = document.state
        now = _now()
        values = {
            "state": target,
            "revision_no": revision_tracker.next_revision_no(
                document.revision_no, from_state, target
            ),
            "last_actor_id": actor.id,
            "updated_at": now,
        }
        if action in (WorkflowAction.submit, WorkflowAction.resubmit):
            values.update(
                submitted_at=now,
                submitted_by=actor.id,
                decision_note=None,
                decided_at=None,
            )
        elif action == WorkflowAction.complete:
            values["decided_at"] = now
            if note:
                values["decision_note"] = note
        else:
            values.update(decision_note=note, decided_at=now)

        _compare_and_set(db, document, action, values)
        return _finish(
            db, document, actor, action, from_state.value, target.value, note
        )

    @staticmethod
    def submit(db: Session, actor: Actor, doc_id) -> WorkflowDocument:
        return WorkflowService._transition(db, actor, doc_id, WorkflowAction.submit)

    @staticmethod
    def approve(
        db: Session, actor: Actor, doc_id, note: str | None = None
    ) -> WorkflowDocument:
        note = (note or "").strip() or settings.default_approval_note
        return WorkflowService._transition(
            db, actor, doc_id, WorkflowAction.approve, note
        )

    @staticmethod
    def reject(db: Session, actor: Actor, doc_id, note: str) -> WorkflowDocument:
        return WorkflowService._transition(
            db, actor, doc_id, WorkflowAction.reject, note
        )

    @staticmethod
    def request_revision(
        db: Session, actor: Actor, doc_id, note: str
    ) -> WorkflowDocument:
        return WorkflowService._transition(
            db, actor, doc_id, WorkflowAction.revise, note
        )

    @staticmethod
    def resubmit(db: Session, actor: Actor, doc_id) -> WorkflowDocument:
        return WorkflowService._transition(db, actor, doc_id, WorkflowAction.resubmit)

    @staticmethod
    def complete(
        db: Session, actor: Actor, doc_id, note: str | None = None
    ) -> WorkflowDocument:
        return WorkflowService._transition(
            db, actor, doc_id, WorkflowAction.complete, note
        )

    # ------------------------------------------------------------------
    # Cover sub-workflow
    # ------------------------------------------------------------------

    @staticmethod
    def upload_cover(
        db: Session, actor: Actor, doc_id, cover_key: str
    ) -> WorkflowDocument:
        document = _fetch(db, doc_id)
        cover_subflow.ensure_supported(document)
        _ensure_visible(actor, document)
        action = WorkflowAction.upload_cover
        role_gate.require(actor, action, document)
        if not (cover_key or "").strip():
            raise ValidationError(
                "A cover key is required", details={"field": "cover_key"}
            )
        target = cover_subflow.target(document, action)
        from_state = document.cover_state
        now = _now()
        _compare_and_set(
            db,
            document,
            action,
            {
                "cover_state": target,
                "cover_key": cover_key.strip(),
                "cover_note": None,
                "cover_submitted_at": now,
                "cover_decided_at": None,
                "cover_decided_by": None,
                "last_actor_id": actor.id,
                "updated_at": now,
            },
            cover=True,
        )
        return _finish(
            db, document, actor, action, from_state.value, target.value, None
        )

    @staticmethod
    def decide_cover(
        db: Session,
        actor: Actor,
        doc_id,
        approve: bool,
        note: str | None = None,
    ) -> WorkflowDocument:
        document = _fetch(db, doc_id)
        cover_subflow.ensure_supported(document)
        _ensure_visible(actor, document)
        action = cover_subflow.decision_action(approve)
        role_gate.require(actor, action, document)
        target = cover_subflow.target(document, action)
        from_state = document.cover_state
        now = _now()
        _compare_and_set(
            db,
            document,
            action,
            {
                "cover_state": target,
                "cover_note": note,
                "cover_decided_at": now,
                "cover_decided_by": actor.id,
                "last_actor_id": actor.id,
                "updated_at": now,
            },
            cover=True,
        )
        return _finish(
            db, document, actor, action, from_state.value, target.value, note
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def history(db: Session, actor: Actor, doc_id) -> list[WorkflowHistory]:
        document = _load(db, actor, doc_id)
        return revision_tracker.history(db, document.id)

    @staticmethod
    def list_mailbox(
        db: Session,
        actor: Actor,
        kind: str,
        org_scope=None,
        status: str | None = None,
        variant: str | None = None,
        q: str | None = None,
        limit: int = 25,
        offset: int = 0,
    ) -> dict:
        items, total = document_router.mailbox(
            db,
            actor,
            kind,
            org_scope=org_scope,
            status=status,
            variant=variant,
            q=q,
            limit=limit,
            offset=offset,
        )
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    @staticmethod
    def get_download_locator(db: Session, actor: Actor, doc_id) -> dict:
        document = _load(db, actor, doc_id)
        if not document.file_key:
            raise NotFoundError(
                "Document has no stored file",
                details={"document_id": str(document.id)},
            )
        return {
            "document_id": document.id,
            "locator": storage.resolve_locator(document.file_key),
        }


workflow = WorkflowService()
