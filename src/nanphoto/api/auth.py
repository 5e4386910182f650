"""Shared-password session gate.

The gate is active only when ``NANPHOTO_PASSWORD`` is set.  A successful
login stores the SHA-256 hex digest of the password in the
``nanphoto_sess`` cookie; every protected route compares that cookie with
the digest of the configured password.
"""

from __future__ import annotations

import hashlib
import hmac

from fastapi import Request, Response

from nanphoto.core.config import NanphotoConfig
from nanphoto.core.errors import Unauthorized

COOKIE_NAME = "nanphoto_sess"
SESSION_MAX_AGE = 86400


def session_token(password: str) -> str:
    """Return the cookie value for *password* (empty string if no password)."""
    if not password:
        return ""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def is_authenticated(request: Request, config: NanphotoConfig) -> bool:
    """Return whether *request* may use protected routes."""
    if not config.auth_enabled:
        return True
    cookie = request.cookies.get(COOKIE_NAME, "").strip()
    return bool(cookie) and hmac.compare_digest(cookie, session_token(config.password))


def check_password(password: str, config: NanphotoConfig) -> bool:
    """Return whether *password* matches the configured one."""
    return hmac.compare_digest(password.encode("utf-8"), config.password.encode("utf-8"))


def set_session_cookie(response: Response, config: NanphotoConfig) -> None:
    response.set_cookie(
        COOKIE_NAME,
        session_token(config.password),
        max_age=SESSION_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, path="/", httponly=True, samesite="lax")


def require_session(request: Request) -> None:
    """FastAPI dependency rejecting requests without a valid session.

    Raises:
        Unauthorized: If the gate is active and the cookie is missing or wrong.
    """
    config: NanphotoConfig = request.app.state.config
    if not is_authenticated(request, config):
        raise Unauthorized()
