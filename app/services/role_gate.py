"""Authorization for workflow actions.

Every action button, every mailbox and every server-side check goes through
``RoleGate``. ``reviewer_audiences`` is the single description of who may
decide a document; the router materializes it into ``document_routes`` so
that mailbox membership and ``can()`` never disagree.
"""

import logging
from dataclasses import dataclass

from app.config import settings
from app.errors import PermissionDenied
from app.models.workflow import (
    AudienceType,
    DocumentState,
    DocumentVariant,
    WorkflowAction,
    WorkflowDocument,
)
from app.services.actor import Actor

logger = logging.getLogger(__name__)

AUTHOR_ACTIONS = frozenset(
    {
        WorkflowAction.create,
        WorkflowAction.update,
        WorkflowAction.submit,
        WorkflowAction.resubmit,
        WorkflowAction.upload_cover,
    }
)
REVIEWER_ACTIONS = frozenset(
    {WorkflowAction.approve, WorkflowAction.reject, WorkflowAction.revise}
)
COVER_REVIEW_ACTIONS = frozenset(
    {WorkflowAction.approve_cover, WorkflowAction.reject_cover}
)


@dataclass(frozen=True)
class Audience:
    type: AudienceType
    org_id: object = None
    role_code: str | None = None

    def matches(self, actor: Actor) -> bool:
        if self.type == AudienceType.global_role:
            return self.role_code in actor.global_roles
        if self.type == AudienceType.org_role:
            return actor.has_org_role(self.org_id, {self.role_code})
        return actor.belongs_to(self.org_id)


def _global(roles) -> list[Audience]:
    return [
        Audience(AudienceType.global_role, role_code=code) for code in sorted(roles)
    ]


def _platform_reviewer_roles(variant: DocumentVariant) -> frozenset[str]:
    if variant == DocumentVariant.activity:
        return settings.activity_reviewer_roles
    if variant == DocumentVariant.report:
        return settings.report_reviewer_roles
    return settings.letter_reviewer_roles


class RoleGate:
    @staticmethod
    def is_full_admin(actor: Actor) -> bool:
        return actor.has_global_role(settings.full_admin_roles)

    @staticmethod
    def reviewer_audiences(
        document: WorkflowDocument, action: WorkflowAction = WorkflowAction.approve
    ) -> list[Audience]:
        audiences = _global(settings.full_admin_roles)
        if action in COVER_REVIEW_ACTIONS:
            return audiences + _global(settings.cover_reviewer_roles)
        if document.variant == DocumentVariant.letter and document.target_org_id:
            return audiences + [
                Audience(AudienceType.org_role, document.target_org_id, code)
                for code in sorted(settings.letter_org_reviewer_roles)
            ]
        return audiences + _global(_platform_reviewer_roles(document.variant))

    @staticmethod
    def required_roles(document: WorkflowDocument, action: WorkflowAction) -> list:
        if action in AUTHOR_ACTIONS:
            return [f"member:{document.origin_org_id}"]
        roles = []
        for audience in RoleGate.reviewer_audiences(document, action):
            if audience.type == AudienceType.org_role:
                roles.append(f"{audience.role_code}@{audience.org_id}")
            else:
                roles.append(audience.role_code)
        return roles

    @staticmethod
    def is_reviewer(
        actor: Actor,
        document: WorkflowDocument,
        action: WorkflowAction = WorkflowAction.approve,
    ) -> bool:
        return any(
            audience.matches(actor)
            for audience in RoleGate.reviewer_audiences(document, action)
        )

    @staticmethod
    def can(actor: Actor, action: WorkflowAction, document: WorkflowDocument) -> bool:
        if RoleGate.is_full_admin(actor):
            return True
        if action in AUTHOR_ACTIONS:
            return actor.belongs_to(document.origin_org_id)
        if action in REVIEWER_ACTIONS or action in COVER_REVIEW_ACTIONS:
            return RoleGate.is_reviewer(actor, document, action)
        if action == WorkflowAction.complete:
            return actor.belongs_to(
                document.origin_org_id
            ) or RoleGate.is_reviewer(actor, document)
        return False

    @staticmethod
    def require(actor: Actor, action: WorkflowAction, document: WorkflowDocument):
        if RoleGate.can(actor, action, document):
            return
        logger.info(
            "Denied %s on document %s for actor %s",
            action.value,
            document.id,
            actor.id,
        )
        raise PermissionDenied(
            f"Not allowed to {action.value} this {document.variant.value}",
            details={
                "action": action.value,
                "required_roles": RoleGate.required_roles(document, action),
            },
        )

    @staticmethod
    def can_view(actor: Actor, document: WorkflowDocument) -> bool:
        if document.state == DocumentState.draft:
            return actor.belongs_to(document.origin_org_id)
        if RoleGate.is_full_admin(actor):
            return True
        if actor.belongs_to(document.origin_org_id):
            return True
        if actor.belongs_to(document.target_org_id):
            return True
        if RoleGate.is_reviewer(actor, document):
            return True
        if document.variant == DocumentVariant.activity:
            return RoleGate.is_reviewer(actor, document, WorkflowAction.approve_cover)
        return False


role_gate = RoleGate()
