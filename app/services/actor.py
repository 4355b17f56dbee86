import uuid
from dataclasses import dataclass, field

from app.services.common import coerce_uuid


def normalize_role(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class Membership:
    org_id: uuid.UUID
    role: str


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as seen by the workflow.

    Identity lives outside this service; the actor carries only what the
    authorization rules need.
    """

    id: uuid.UUID
    memberships: tuple[Membership, ...] = ()
    global_roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        actor_id,
        memberships=(),
        global_roles=(),
    ) -> "Actor":
        return cls(
            id=coerce_uuid(actor_id),
            memberships=tuple(
                Membership(org_id=coerce_uuid(org_id), role=normalize_role(role))
                for org_id, role in memberships
            ),
            global_roles=frozenset(
                normalize_role(code) for code in global_roles if code.strip()
            ),
        )

    @property
    def org_ids(self) -> set[uuid.UUID]:
        return {m.org_id for m in self.memberships}

    def belongs_to(self, org_id: uuid.UUID | None) -> bool:
        if org_id is None:
            return False
        return coerce_uuid(org_id) in self.org_ids

    def has_org_role(self, org_id: uuid.UUID | None, roles) -> bool:
        if org_id is None:
            return False
        org_uuid = coerce_uuid(org_id)
        return any(m.org_id == org_uuid and m.role in roles for m in self.memberships)

    def has_global_role(self, roles) -> bool:
        return not self.global_roles.isdisjoint(roles)

    @property
    def is_anonymous(self) -> bool:
        return not self.memberships and not self.global_roles
