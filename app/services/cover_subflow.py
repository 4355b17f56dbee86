from app.errors import InvalidTransitionError
from app.models.workflow import CoverState, WorkflowAction, WorkflowDocument
from app.services.workflow_machine import policy_for

COVER_TRANSITIONS: dict[WorkflowAction, tuple[frozenset[CoverState], CoverState]] = {
    WorkflowAction.upload_cover: (
        frozenset({CoverState.none, CoverState.rejected}),
        CoverState.pending,
    ),
    WorkflowAction.approve_cover: (
        frozenset({CoverState.pending}),
        CoverState.approved,
    ),
    WorkflowAction.reject_cover: (
        frozenset({CoverState.pending}),
        CoverState.rejected,
    ),
}


class CoverApprovalSubflow:
    """Cover-image approval, independent of the document's own state."""

    @staticmethod
    def ensure_supported(document: WorkflowDocument) -> None:
        if not policy_for(document.variant).uses_cover:
            raise InvalidTransitionError(
                f"A {document.variant.value} has no cover image",
                details={
                    "variant": document.variant.value,
                    "current_state": document.cover_state.value,
                    "allowed_actions": [],
                },
            )

    @staticmethod
    def decision_action(approve: bool) -> WorkflowAction:
        return WorkflowAction.approve_cover if approve else WorkflowAction.reject_cover

    @staticmethod
    def target(document: WorkflowDocument, action: WorkflowAction) -> CoverState:
        CoverApprovalSubflow.ensure_supported(document)
        sources, target = COVER_TRANSITIONS[action]
        if document.cover_state not in sources:
            allowed = [
                a.value
                for a, (srcs, _) in COVER_TRANSITIONS.items()
                if document.cover_state in srcs
            ]
            raise InvalidTransitionError(
                f"Cannot {action.value} while cover is {document.cover_state.value}",
                details={
                    "current_state": document.cover_state.value,
                    "action": action.value,
                    "allowed_actions": allowed,
                },
            )
        return target


cover_subflow = CoverApprovalSubflow()
