from __future__ import annotations

from fastapi import Request

from attendance_ledger.core.actor import Actor, resolve_actor
from attendance_ledger.request_context import actor_label, current_actor
from attendance_ledger.services.auth_service import validate_session_token


def _resolve_token(request: Request) -> str | None:
    token = request.cookies.get('auth_session')
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def resolve_request_actor(request: Request) -> Actor | None:
    # No 401 here: the ledger services answer unauthenticated callers themselves.
    actor = resolve_actor(validate_session_token(_resolve_token(request)))
    current_actor.set(actor_label(actor))
    return actor
