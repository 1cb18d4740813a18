"""Authentication utilities"""
import hashlib
import hmac
import re
import secrets
from typing import List, Optional, Tuple

import pyotp
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from app.config import settings

_password_hasher = PasswordHasher()

_TOTP_CODE_RE = re.compile(r"^\d{6}$")


def hash_password(password: str) -> str:
    """Hash a password with argon2id"""
    return _password_hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Check a password against its argon2 hash; never raises on mismatch"""
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def hash_token(token: str) -> str:
    """Hash a bearer token using SHA256"""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_opaque_token() -> str:
    """Generate a random URL-safe bearer token"""
    return secrets.token_urlsafe(32)


def generate_prefixed_id(prefix: str) -> str:
    """Generate a unique identifier such as ``usr_xxx`` or ``apr_xxx``"""
    return f"{prefix}{secrets.token_urlsafe(12)}"


# ---------------------------------------------------------------------------
# Second factor
# ---------------------------------------------------------------------------

def generate_totp_secret() -> str:
    return pyotp.random_base32()


def totp_provisioning_uri(secret: str, email: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=settings.TOTP_ISSUER)


def verify_totp(secret: str, code: str) -> bool:
    """Verify a 6-digit TOTP code, tolerating one step of clock drift"""
    if not _TOTP_CODE_RE.match(code):
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def _normalize_backup_code(code: str) -> str:
    return code.strip().replace("-", "").replace(" ", "").lower()


def hash_backup_code(code: str) -> str:
    """Salted SHA256 digest of a backup code"""
    normalized = _normalize_backup_code(code)
    return hmac.new(settings.ADMIN_BACKUP_CODE_SALT.encode(), normalized.encode(), hashlib.sha256).hexdigest()


def generate_backup_codes(count: int = 8) -> Tuple[List[str], List[str]]:
    """Return (plain codes shown once, digests to store)"""
    codes = [f"{secrets.token_hex(4)}-{secrets.token_hex(4)}" for _ in range(count)]
    return codes, [hash_backup_code(code) for code in codes]


def match_backup_code(stored_hashes: List[str], code: str) -> Optional[str]:
    """Return the stored digest matching ``code``, or None"""
    candidate = hash_backup_code(code)
    for stored in stored_hashes or []:
        if hmac.compare_digest(stored, candidate):
            return stored
    return None


# ---------------------------------------------------------------------------
# User-Agent parsing (coarse device/browser/os labels for session listings)
# ---------------------------------------------------------------------------

def parse_user_agent(user_agent: Optional[str]) -> Tuple[str, str, str]:
    """Return (device, browser, os) labels derived from a User-Agent header"""
    ua = (user_agent or "").lower()

    if "ipad" in ua or "tablet" in ua:
        device = "tablet"
    elif "mobile" in ua or "iphone" in ua or "android" in ua:
        device = "mobile"
    elif ua:
        device = "desktop"
    else:
        device = "unknown"

    if "edg/" in ua:
        browser = "Edge"
    elif "chrome/" in ua and "chromium" not in ua:
        browser = "Chrome"
    elif "firefox/" in ua:
        browser = "Firefox"
    elif "safari/" in ua:
        browser = "Safari"
    else:
        browser = "Other"

    if "windows" in ua:
        os_name = "Windows"
    elif "android" in ua:
        os_name = "Android"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua:
        os_name = "iOS"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Other"

    return device, browser, os_name
