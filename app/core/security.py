"""Access token handling for staff callers.

Tokens are issued by the platform's auth service. This service only
verifies them and turns their claims into an :class:`~app.core.actors.Actor`:

- ``sub``: the staff member's id
- ``role``: ``staff``, ``manager`` or ``admin`` (``customer`` tokens are
  accepted but grant no business access)
- ``business_id`` and/or ``business_ids``: businesses the caller works for
- ``type``: always ``access``
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from app.config import settings
from app.core.actors import Actor
from app.schemas.appointments import ActorKind


class InvalidTokenError(Exception):
    """Token is malformed, expired or carries unusable claims."""


def create_access_token(
    subject: UUID | str,
    role: str = ActorKind.STAFF.value,
    business_ids: Iterable[UUID | str] = (),
    expires_delta: timedelta | None = None,
    **claims: Any,
) -> str:
    """
    Mint a token with the same shape the auth service issues.

    Used by operational scripts and tests.
    """
    issued_at = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(subject),
        "role": role,
        "iat": issued_at,
        "exp": issued_at
        + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes)),
        "type": "access",
        **claims,
    }
    ids = [str(value) for value in business_ids]
    if ids:
        payload["business_ids"] = ids

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises:
        InvalidTokenError: If the token cannot be trusted
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise InvalidTokenError(str(e)) from e

    if payload.get("type") != "access":
        raise InvalidTokenError("Not an access token")
    return payload


def _business_claims(payload: dict[str, Any]) -> frozenset[UUID]:
    raw = list(payload.get("business_ids") or [])
    if payload.get("business_id"):
        raw.append(payload["business_id"])
    try:
        return frozenset(UUID(str(value)) for value in raw)
    except ValueError as e:
        raise InvalidTokenError("Invalid business claim") from e


def actor_from_token(token: str) -> Actor:
    """
    Decode ``token`` into the acting principal.

    The system actor is never accepted from outside the process.
    """
    payload = decode_access_token(token)

    subject = payload.get("sub")
    if not isinstance(subject, str):
        raise InvalidTokenError("Missing subject")
    try:
        actor_id = UUID(subject)
        kind = ActorKind(payload.get("role", ActorKind.STAFF.value))
    except ValueError as e:
        raise InvalidTokenError("Invalid token claims") from e

    if kind is ActorKind.SYSTEM:
        raise InvalidTokenError("System role cannot be presented by callers")

    return Actor(kind=kind, id=actor_id, business_ids=_business_claims(payload))
