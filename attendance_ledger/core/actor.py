from __future__ import annotations

from dataclasses import dataclass

from attendance_ledger.models import Role


_ROLE_ALIASES = {
    'admin': Role.ADMIN,
    'super_admin': Role.ADMIN,
    'superadmin': Role.ADMIN,
    'teacher': Role.TEACHER,
}


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER


def normalize_role(role: str | None) -> Role | None:
    return _ROLE_ALIASES.get(str(role or '').strip().lower())


def resolve_actor(session: dict | None) -> Actor | None:
    """Collapse validated session claims into the ledger's two-role actor.

    Roles outside teacher/admin resolve to ``None`` and are treated as
    unauthenticated by every ledger entry point.
    """
    if not session:
        return None
    role = normalize_role(session.get('role'))
    if role is None:
        return None
    try:
        actor_id = int(session.get('user_id') or 0)
    except (TypeError, ValueError):
        return None
    if actor_id <= 0:
        return None
    return Actor(id=actor_id, role=role)
