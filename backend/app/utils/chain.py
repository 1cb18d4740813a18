"""Cryptographic audit log chaining utilities.

Each admin audit entry stores a SHA-256 hash that covers the previous entry's
log_id + timestamp + the current entry's log_id + action. Editing or deleting
a row breaks the chain, which GET /admin/audit-logs/verify reports.
"""
import hashlib
from datetime import datetime


def compute_hash(
    prev_log_id: str,
    prev_timestamp: datetime,
    current_log_id: str,
    current_action: str,
) -> str:
    """Return SHA-256 hex digest linking the current entry to the previous one.

    Args:
        prev_log_id:       log_id of the immediately preceding entry.
        prev_timestamp:    created_at of the immediately preceding entry.
        current_log_id:    log_id of the entry being inserted.
        current_action:    action field of the entry being inserted.

    Returns:
        64-character lowercase hex digest.
    """
    raw = f"{prev_log_id}|{prev_timestamp.isoformat()}|{current_log_id}|{current_action}"
    return hashlib.sha256(raw.encode()).hexdigest()


def genesis_hash() -> str:
    """Hash stored on the first entry of the trail: SHA-256("GENESIS")."""
    return hashlib.sha256(b"GENESIS").hexdigest()
