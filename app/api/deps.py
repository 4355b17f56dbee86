from fastapi import Header, HTTPException, status

from app.errors import ValidationError
from app.services.actor import Actor


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "unauthorized", "message": message, "details": None},
        headers={"WWW-Authenticate": "Actor"},
    )


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def require_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_roles: str | None = Header(default=None),
    x_actor_orgs: str | None = Header(default=None),
) -> Actor:
    """Build the caller from headers set by the authenticating gateway.

    ``X-Actor-Orgs`` is a comma list of ``org_uuid:ROLE`` pairs.
    """
    if not x_actor_id:
        raise _unauthorized("Missing actor")
    memberships = []
    for item in _split(x_actor_orgs):
        org_id, sep, role = item.partition(":")
        if not sep or not org_id.strip() or not role.strip():
            raise _unauthorized(f"Malformed membership: {item}")
        memberships.append((org_id.strip(), role))
    try:
        return Actor.build(
            x_actor_id.strip(),
            memberships=memberships,
            global_roles=_split(x_actor_roles),
        )
    except ValidationError:
        raise _unauthorized("Malformed actor identity")
