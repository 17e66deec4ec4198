"""Panel identity: signed identity headers and the FastAPI dependencies built on them."""

import hashlib
import hmac
import logging
import time
from typing import Optional
from urllib.parse import parse_qs

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.errors import AuthenticationError, AuthorizationError
from marketplace.models import User
from marketplace.services import get_db

logger = logging.getLogger(__name__)

AUTH_SCHEME = "panel"


def _secret_key(secret: str) -> bytes:
    return hmac.new(b"PanelAuth", msg=secret.encode(), digestmod=hashlib.sha256).digest()


def _check_string(fields: dict[str, str]) -> str:
    return "\n".join(f"{key}={value}" for key, value in sorted(fields.items()) if key != "hash")


def sign_panel_payload(user_id: int, secret: str, auth_date: Optional[int] = None) -> str:
    """Build a signed identity payload for a panel user.

    The control panel calls this once per request; tests use it to
    authenticate as a given user.
    """
    fields = {
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "user_id": str(user_id),
    }
    signature = hmac.new(
        _secret_key(secret), msg=_check_string(fields).encode(), digestmod=hashlib.sha256
    ).hexdigest()
    return f"auth_date={fields['auth_date']}&user_id={fields['user_id']}&hash={signature}"


def verify_panel_signature(payload: str, secret: str, max_age_seconds: int = 300) -> int:
    """
    Verify a signed panel identity payload using HMAC-SHA256.

    The payload is a query string with auth_date, user_id and hash. The hash
    covers every other field as sorted key=value lines joined by newlines.

    Args:
        payload: Query string from the Authorization header
        secret: Shared panel secret
        max_age_seconds: Maximum age of auth_date in seconds

    Returns:
        Authenticated user id

    Raises:
        AuthenticationError: If the payload is malformed, stale or forged
    """
    parsed = {key: values[0] for key, values in parse_qs(payload, keep_blank_values=True).items()}

    hash_value = parsed.get("hash")
    if not hash_value:
        logger.warning("Panel payload missing hash field")
        raise AuthenticationError("Missing hash field")

    try:
        auth_date = int(parsed.get("auth_date", ""))
        user_id = int(parsed.get("user_id", ""))
    except ValueError:
        logger.warning("Panel payload has malformed auth_date or user_id")
        raise AuthenticationError("Malformed identity")

    age = int(time.time()) - auth_date
    if age > max_age_seconds:
        logger.warning(f"Panel payload expired: age={age}s, max={max_age_seconds}s")
        raise AuthenticationError("Identity expired")

    computed_hash = hmac.new(
        _secret_key(secret), msg=_check_string(parsed).encode(), digestmod=hashlib.sha256
    ).hexdigest()
    if not hmac.compare_digest(computed_hash, hash_value):
        logger.warning("Panel payload signature verification failed")
        raise AuthenticationError("Invalid signature")

    return user_id


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user from the Authorization header.

    Expects ``Authorization: panel <payload>``.
    """
    if not authorization:
        raise AuthenticationError()
    scheme, _, payload = authorization.partition(" ")
    if scheme.lower() != AUTH_SCHEME or not payload:
        raise AuthenticationError("Unsupported authorization scheme")

    user_id = verify_panel_signature(
        payload.strip(), settings.panel_auth_secret, settings.auth_max_age_seconds
    )
    user = db.get(User, user_id)
    if not user:
        logger.warning(f"Signed identity for unknown user {user_id}")
        raise AuthenticationError("Unknown user")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency allowing only platform administrators."""
    if not user.is_administrator:
        logger.warning(f"Non-admin user {user.id} attempted an admin action")
        raise AuthorizationError("Administrator access required")
    return user


__all__ = [
    "AUTH_SCHEME",
    "sign_panel_payload",
    "verify_panel_signature",
    "get_current_user",
    "require_admin",
]
