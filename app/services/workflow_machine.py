"""Document lifecycle state machine.

One transition table serves all variants; a ``VariantPolicy`` narrows it
(which actions exist, which payload fields a submission needs).
"""

import logging
from dataclasses import dataclass

from app.errors import InvalidTransitionError, ValidationError
from app.models.workflow import (
    DocumentState,
    DocumentVariant,
    WorkflowAction,
    WorkflowDocument,
)

logger = logging.getLogger(__name__)

# action -> (allowed source states, target state)
TRANSITIONS: dict[WorkflowAction, tuple[frozenset[DocumentState], DocumentState]] = {
    WorkflowAction.submit: (
        frozenset({DocumentState.draft}),
        DocumentState.pending,
    ),
    WorkflowAction.approve: (
        frozenset({DocumentState.pending}),
        DocumentState.approved,
    ),
    WorkflowAction.reject: (
        frozenset({DocumentState.pending}),
        DocumentState.rejected,
    ),
    WorkflowAction.revise: (
        frozenset({DocumentState.pending}),
        DocumentState.revision_requested,
    ),
    WorkflowAction.resubmit: (
        frozenset({DocumentState.revision_requested}),
        DocumentState.pending,
    ),
    WorkflowAction.complete: (
        frozenset({DocumentState.approved}),
        DocumentState.completed,
    ),
}

NOTE_REQUIRED = frozenset({WorkflowAction.reject, WorkflowAction.revise})
EDITABLE_STATES = frozenset({DocumentState.draft, DocumentState.revision_requested})


@dataclass(frozen=True)
class VariantPolicy:
    variant: DocumentVariant
    actions: frozenset[WorkflowAction]
    content_fields: tuple[str, ...]
    uses_cover: bool = False
    allows_target_org: bool = False
    allows_parent: bool = False

    @property
    def states(self) -> frozenset[DocumentState]:
        states = {DocumentState.draft}
        for action in self.actions:
            sources, target = TRANSITIONS[action]
            states.update(sources)
            states.add(target)
        return frozenset(states)


_BASE_ACTIONS = frozenset(
    {
        WorkflowAction.submit,
        WorkflowAction.approve,
        WorkflowAction.reject,
        WorkflowAction.revise,
        WorkflowAction.resubmit,
    }
)

POLICIES: dict[DocumentVariant, VariantPolicy] = {
    DocumentVariant.activity: VariantPolicy(
        variant=DocumentVariant.activity,
        actions=_BASE_ACTIONS | {WorkflowAction.complete},
        content_fields=("description", "location", "file_key"),
        uses_cover=True,
    ),
    DocumentVariant.report: VariantPolicy(
        variant=DocumentVariant.report,
        actions=_BASE_ACTIONS | {WorkflowAction.complete},
        content_fields=("summary", "file_key"),
        allows_parent=True,
    ),
    DocumentVariant.letter: VariantPolicy(
        variant=DocumentVariant.letter,
        actions=_BASE_ACTIONS,
        content_fields=("body", "file_key"),
        allows_target_org=True,
    ),
}


def policy_for(variant: DocumentVariant) -> VariantPolicy:
    return POLICIES[variant]


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return not value
    return False


class WorkflowStateMachine:
    def __init__(self, policy: VariantPolicy):
        self.policy = policy

    @classmethod
    def for_document(cls, document: WorkflowDocument) -> "WorkflowStateMachine":
        return cls(policy_for(document.variant))

    def allowed_actions(self, state: DocumentState) -> list[WorkflowAction]:
        return sorted(
            (
                action
                for action in self.policy.actions
                if state in TRANSITIONS[action][0]
            ),
            key=lambda action: action.value,
        )

    def target(self, state: DocumentState, action: WorkflowAction) -> DocumentState:
        """Return the state ``action`` leads to from ``state``.

        Raises InvalidTransitionError when the edge is not in this variant's
        table. Nothing is mutated.
        """
        if action in self.policy.actions:
            sources, target = TRANSITIONS[action]
            if state in sources:
                return target
        raise InvalidTransitionError(
            f"Cannot {action.value} a {self.policy.variant.value} "
            f"in state {state.value}",
            details={
                "current_state": state.value,
                "action": action.value,
                "allowed_actions": [a.value for a in self.allowed_actions(state)],
            },
        )

    def missing_fields(self, document: WorkflowDocument) -> list[str]:
        missing = []
        if _is_blank(document.subject):
            missing.append("subject")
        payload = document.payload or {}
        has_content = False
        for name in self.policy.content_fields:
            value = document.file_key if name == "file_key" else payload.get(name)
            if not _is_blank(value):
                has_content = True
                break
        if not has_content:
            missing.append(" | ".join(self.policy.content_fields))
        return missing

    def check_guards(
        self, document: WorkflowDocument, action: WorkflowAction, note: str | None
    ) -> None:
        if action in (WorkflowAction.submit, WorkflowAction.resubmit):
            missing = self.missing_fields(document)
            if missing:
                raise ValidationError(
                    f"{self.policy.variant.value.capitalize()} is incomplete",
                    details={"missing_fields": missing},
                )
        if action in NOTE_REQUIRED and _is_blank(note):
            raise ValidationError(
                f"A note is required to {action.value}",
                details={"field": "note"},
            )

    def transition(
        self,
        document: WorkflowDocument,
        action: WorkflowAction,
        note: str | None = None,
    ) -> DocumentState:
        target = self.target(document.state, action)
        self.check_guards(document, action, note)
        logger.debug(
            "Validated %s on %s: %s -> %s",
            action.value,
            document.id,
            document.state.value,
            target.value,
        )
        return target
