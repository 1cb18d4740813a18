"""CSRF protection for state-changing admin requests.

Double-submit cookie pattern: the token is set in a readable cookie at login
and must be echoed in the ``X-CSRF-Token`` header. The token is additionally
signed over the owning session id, so a token lifted from one session is
useless in another.

Token format: ``nonce.timestamp.signature``
"""
import hashlib
import hmac
import secrets
import time
from typing import Optional, Tuple

from fastapi import Request

from app.config import settings
from app.utils.errors import CsrfInvalidError
from app.utils.logger import logger

# Methods that modify state and require CSRF protection
STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _sign(session_id: str, nonce: str, timestamp: str) -> str:
    data = f"{session_id}.{nonce}.{timestamp}".encode()
    return hmac.new(settings.CSRF_SECRET.encode(), data, hashlib.sha256).hexdigest()[:32]


def generate_csrf_nonce() -> str:
    return secrets.token_urlsafe(24)


def build_csrf_token(session_id: str, nonce: str, issued_at: Optional[int] = None) -> str:
    """Build the cookie/header token for a session's nonce"""
    timestamp = str(int(issued_at if issued_at is not None else time.time()))
    return f"{nonce}.{timestamp}.{_sign(session_id, nonce, timestamp)}"


def token_matches_session(token: str, session_id: str, session_nonce: str) -> bool:
    """Check a token's signature and nonce against the owning session.

    Expiry is not checked here; the token dies with its session.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return False

    nonce, timestamp, signature = parts
    if not timestamp.isdigit():
        return False

    expected = _sign(session_id, nonce, timestamp)
    if not hmac.compare_digest(expected, signature):
        return False

    return hmac.compare_digest(nonce, session_nonce)


def get_tokens_from_request(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Return (cookie_token, header_token)"""
    return (
        request.cookies.get(settings.CSRF_COOKIE_NAME),
        request.headers.get(settings.CSRF_HEADER_NAME),
    )


def validate_request(request: Request, session_id: str, session_nonce: str) -> None:
    """Validate CSRF for a request bound to ``session_id``.

    Raises:
        CsrfInvalidError: if the cookie or header is missing, they differ, or
            the token was not issued for this session.
    """
    method = request.method.upper()
    if method not in STATE_CHANGING_METHODS:
        return

    cookie_token, header_token = get_tokens_from_request(request)
    log_extra = {"method": method, "path": request.url.path, "session_id": session_id}

    if not cookie_token:
        logger.warning("CSRF cookie missing", extra=log_extra)
        raise CsrfInvalidError("CSRF token missing from cookie", reason="cookie_missing")

    if not header_token:
        logger.warning("CSRF header missing", extra=log_extra)
        raise CsrfInvalidError(
            f"CSRF token missing from {settings.CSRF_HEADER_NAME} header",
            reason="header_missing",
        )

    # Constant-time comparison
    if not hmac.compare_digest(cookie_token, header_token):
        logger.warning("CSRF token mismatch", extra=log_extra)
        raise CsrfInvalidError("CSRF token mismatch", reason="mismatch")

    if not token_matches_session(cookie_token, session_id, session_nonce):
        logger.warning("CSRF token not bound to session", extra=log_extra)
        raise CsrfInvalidError("CSRF token is not valid for this session", reason="session_mismatch")
