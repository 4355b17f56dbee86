import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.workflow import (
    DocumentState,
    WorkflowAction,
    WorkflowDocument,
    WorkflowHistory,
)
from app.services.actor import Actor

logger = logging.getLogger(__name__)


class RevisionTracker:
    @staticmethod
    def next_revision_no(
        previous: int, from_state: DocumentState, to_state: DocumentState
    ) -> int:
        if (
            from_state == DocumentState.revision_requested
            and to_state == DocumentState.pending
        ):
            return previous + 1
        return previous

    @staticmethod
    def record(
        db: Session,
        document: WorkflowDocument,
        actor: Actor,
        action: WorkflowAction,
        from_state: str,
        to_state: str,
        revision_no: int,
        note: str | None = None,
    ) -> WorkflowHistory:
        """Append a history entry; caller owns the transaction.

        Only called after the document row has been claimed by the
        compare-and-set, so sequence numbers cannot collide.
        """
        last = db.scalar(
            select(func.max(WorkflowHistory.sequence)).where(
                WorkflowHistory.document_id == document.id
            )
        )
        entry = WorkflowHistory(
            document_id=document.id,
            sequence=(last or 0) + 1,
            revision_no=revision_no,
            actor_id=actor.id,
            action=action,
            from_state=from_state,
            to_state=to_state,
            note=note,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def history(db: Session, document_id) -> list[WorkflowHistory]:
        stmt = (
            select(WorkflowHistory)
            .where(WorkflowHistory.document_id == document_id)
            .order_by(WorkflowHistory.sequence.asc())
        )
        return list(db.scalars(stmt).all())


revision_tracker = RevisionTracker()
