from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets

from fastapi import Response

from assignment_api.core.config import get_settings


def new_random_token(*, nbytes: int = 32) -> str:
    raw = os.urandom(nbytes)
    # URL-safe base64 without padding to keep cookie/header compact.
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def hash_session_token(token: str) -> bytes:
    settings = get_settings()
    # HMAC adds a server-side pepper; a leaked auth_sessions table is not enough to log in.
    return hmac.new(
        settings.JWT_SECRET.encode("utf-8"),
        token.encode("utf-8"),
        hashlib.sha256,
    ).digest()


def credentials_match(*, username: str, password: str, expected_username: str, expected_password: str) -> bool:
    # Compare both halves unconditionally so timing does not reveal which one differed.
    user_ok = secrets.compare_digest(username.encode("utf-8"), expected_username.encode("utf-8"))
    password_ok = secrets.compare_digest(password.encode("utf-8"), expected_password.encode("utf-8"))
    return user_ok and password_ok


def token_authorization_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Token {token}"} if token else {}


def _set_cookie(response: Response, *, key: str, value: str, httponly: bool) -> None:
    settings = get_settings()
    response.set_cookie(
        key=key,
        value=value,
        httponly=httponly,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        domain=settings.COOKIE_DOMAIN,
        path="/",
        max_age=settings.SESSION_TTL_SECONDS,
    )


def _clear_cookie(response: Response, *, key: str) -> None:
    response.delete_cookie(key=key, domain=get_settings().COOKIE_DOMAIN, path="/")


def set_session_cookie(response: Response, token: str) -> None:
    _set_cookie(response, key=get_settings().SESSION_COOKIE_NAME, value=token, httponly=True)


def clear_session_cookie(response: Response) -> None:
    _clear_cookie(response, key=get_settings().SESSION_COOKIE_NAME)


def set_csrf_cookie(response: Response, token: str) -> None:
    # Readable by the browser client, which echoes it back in the CSRF header.
    _set_cookie(response, key=get_settings().CSRF_COOKIE_NAME, value=token, httponly=False)


def clear_csrf_cookie(response: Response) -> None:
    _clear_cookie(response, key=get_settings().CSRF_COOKIE_NAME)
