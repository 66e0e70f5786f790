from __future__ import annotations

from contextvars import ContextVar


current_endpoint: ContextVar[str] = ContextVar('current_endpoint', default='background')
current_actor: ContextVar[str] = ContextVar('current_actor', default='anonymous')


def actor_label(actor) -> str:
    if actor is None:
        return 'anonymous'
    return f'{actor.role.value}:{actor.id}'


def log_labels() -> dict[str, str]:
    return {'endpoint': current_endpoint.get(), 'actor': current_actor.get()}
