from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging

from attendance_ledger.config import settings
from attendance_ledger.core.time_provider import TimeProvider, default_time_provider


logger = logging.getLogger(__name__)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode('ascii'))


def _encode_jwt(payload: dict) -> str:
    header = {'alg': 'HS256', 'typ': 'JWT'}
    header_part = _b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))
    payload_part = _b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    signature = hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()
    signature_part = _b64url_encode(signature)
    return f'{header_part}.{payload_part}.{signature_part}'


def _decode_jwt(token: str) -> dict | None:
    try:
        header_part, payload_part, signature_part = token.split('.')
    except ValueError:
        return None

    try:
        signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    except UnicodeEncodeError:
        return None
    expected_signature = hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()
    try:
        provided_signature = _b64url_decode(signature_part)
    except ValueError:
        return None
    if not hmac.compare_digest(provided_signature, expected_signature):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode('utf-8'))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def issue_session_token(
    *,
    user_id: int,
    role: str,
    ttl_seconds: int = 3600,
    time_provider: TimeProvider = default_time_provider,
) -> str:
    # Operator/test helper; real sessions are minted by the identity service.
    now = int(time_provider.now().timestamp())
    return _encode_jwt({'sub': int(user_id), 'role': str(role), 'iat': now, 'exp': now + int(ttl_seconds)})


def validate_session_token(
    token: str | None,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict | None:
    if not token:
        return None
    payload = _decode_jwt(token)
    if not payload:
        return None

    role = payload.get('role')
    user_id = payload.get('sub')
    if not role or user_id is None:
        return None
    expires_at = payload.get('exp')
    if expires_at is not None:
        try:
            expires_at = int(expires_at)
        except (TypeError, ValueError):
            return None
    if expires_at is not None and expires_at <= int(time_provider.now().timestamp()):
        logger.info('session_token_expired', extra={'user_id': user_id})
        return None

    return {
        'user_id': user_id,
        'role': role,
        'expires_at': expires_at,
    }
