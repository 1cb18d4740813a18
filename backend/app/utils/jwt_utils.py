"""JWT utilities: RS256 keypair management and session token signing/verification"""
from datetime import datetime, timezone
from typing import Any, Dict

from jose import JWTError, jwt

from app.config import settings
from app.utils.errors import AuthenticationRequiredError
from app.utils.logger import logger

# ---------------------------------------------------------------------------
# Keypair management
# ---------------------------------------------------------------------------

_private_key: Any = None   # cryptography RSAPrivateKey object
_public_key: Any = None    # cryptography RSAPublicKey object

SESSION_TOKEN_TYPE = "admin_session"


def _load_keypair() -> None:
    """Load or auto-generate the RSA keypair.

    Reads JWT_PRIVATE_KEY from settings (PEM string).
    If absent, generates a fresh RSA-2048 keypair for this process; every
    session cookie is invalidated on restart in that mode.
    """
    global _private_key, _public_key

    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    if settings.JWT_PRIVATE_KEY:
        pem = settings.JWT_PRIVATE_KEY.encode()
        _private_key = serialization.load_pem_private_key(pem, password=None)
        _public_key = _private_key.public_key()
        logger.info("JWT keypair loaded from JWT_PRIVATE_KEY setting")
    else:
        _private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        _public_key = _private_key.public_key()
        logger.warning(
            "JWT_PRIVATE_KEY not set — auto-generated RSA-2048 keypair for this process. "
            "All admin sessions will be invalidated on restart."
        )


def get_private_key() -> Any:
    """Return the loaded private key, initialising on first call."""
    if _private_key is None:
        _load_keypair()
    return _private_key


def get_public_key() -> Any:
    """Return the loaded public key, initialising on first call."""
    if _public_key is None:
        _load_keypair()
    return _public_key


# ---------------------------------------------------------------------------
# Token creation
# ---------------------------------------------------------------------------

def create_session_token(user_id: str, session_id: str, role: str, expires_at: datetime) -> str:
    """Sign the session cookie value.

    Args:
        user_id:    'sub' claim.
        session_id: 'sid' claim, the admin_sessions row backing this cookie.
        role:       portal role at login time (informational; the DB row wins).
        expires_at: naive UTC absolute expiry of the session.

    Returns:
        Signed JWT string.
    """
    now = int(datetime.now(timezone.utc).timestamp())
    exp = int(expires_at.replace(tzinfo=timezone.utc).timestamp())

    payload: Dict[str, Any] = {
        "sub": user_id,
        "sid": session_id,
        "role": role,
        "iat": now,
        "exp": exp,
        "type": SESSION_TOKEN_TYPE,
    }

    if settings.JWT_KEY_ID:
        payload["kid"] = settings.JWT_KEY_ID

    return jwt.encode(payload, get_private_key(), algorithm=settings.JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------

def decode_session_token(token: str) -> Dict[str, Any]:
    """Verify a session JWT and return its payload.

    Checks signature, expiry and token type. Whether the session is still
    active is decided by the caller against the admin_sessions table.

    Raises:
        AuthenticationRequiredError: on any verification failure.
    """
    try:
        payload = jwt.decode(token, get_public_key(), algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug(f"JWT decode failed: {exc}")
        raise AuthenticationRequiredError("Invalid or expired session")

    if payload.get("type") != SESSION_TOKEN_TYPE or not payload.get("sid") or not payload.get("sub"):
        raise AuthenticationRequiredError("Invalid or expired session")

    return payload
