"""Fire-and-forget webhook notifications for approval workflow events"""
import hashlib
import hmac
import json
import threading
from datetime import datetime
from typing import Any, Dict

import requests

from app.config import settings
from app.utils.logger import logger

_SLACK_TEMPLATES = {
    "approval.created": ("Approval Required", ":hourglass_flowing_sand:", "#F59E0B"),
    "approval.approved": ("Request Approved", ":white_check_mark:", "#10B981"),
    "approval.rejected": ("Request Rejected", ":x:", "#EF4444"),
    "approval.executed": ("Approved Action Executed", ":rocket:", "#3B82F6"),
    "break_glass.used": ("Break-Glass Override Used", ":rotating_light:", "#DC2626"),
}


def _deliver(url: str, body: bytes, headers: Dict[str, str]) -> None:
    """Deliver webhook payload in a daemon background thread (fire-and-forget)."""
    try:
        resp = requests.post(url, data=body, headers=headers, timeout=5)
        logger.debug("Webhook delivered", extra={"path": url, "status": resp.status_code})
    except requests.RequestException as exc:
        logger.warning("Webhook delivery failed", extra={"path": url, "error": str(exc)})


def _slack_body(event_type: str, payload: Dict[str, Any]) -> bytes:
    """Format an admin workflow event as a Slack incoming-webhook message."""
    title, emoji, color = _SLACK_TEMPLATES.get(event_type, ("Admin Event", ":bell:", "#6B7280"))
    action = payload.get("action", "unknown")
    target = payload.get("target_id") or ""
    actor = payload.get("actor_email") or payload.get("actor_user_id") or "unknown"
    ts = datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC")

    text = f"*Exam Admin — {title}* {emoji}\n*{actor}*: `{action}`" + (f" on `{target}`" if target else "")
    note = payload.get("note") or payload.get("reason")
    if note:
        text += f"\n> {note}"

    slack_payload = {
        "attachments": [{
            "color": color,
            "text": text,
            "footer": f"Exam Admin | {ts}",
        }]
    }
    return json.dumps(slack_payload).encode()


def send_webhook(event_type: str, payload: Dict[str, Any]) -> None:
    """
    Send a webhook notification for an admin workflow event (non-blocking).

    Supported event types:
      - ``approval.created``   — a guarded action is waiting for a second reviewer
      - ``approval.approved``  — a reviewer approved the request
      - ``approval.rejected``  — a reviewer rejected the request
      - ``approval.executed``  — the requester executed the approved action
      - ``break_glass.used``   — an emergency override bypassed dual approval

    Configuration (backend/.env):
      - ``WEBHOOK_URL``    — destination URL; Slack incoming webhooks are auto-detected.
      - ``WEBHOOK_SECRET`` — if set, adds ``X-Admin-Signature: sha256=<hex>``.

    The call returns immediately; delivery happens in a daemon thread.
    """
    url = settings.WEBHOOK_URL
    if not url:
        return

    if "hooks.slack.com" in url:
        body = _slack_body(event_type, payload)
        headers: Dict[str, str] = {"Content-Type": "application/json"}
    else:
        body_dict: Dict[str, Any] = {
            "event": event_type,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            **payload,
        }
        body = json.dumps(body_dict, default=str).encode()
        headers = {"Content-Type": "application/json"}

        if settings.WEBHOOK_SECRET:
            sig = hmac.new(settings.WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
            headers["X-Admin-Signature"] = f"sha256={sig}"

    threading.Thread(target=_deliver, args=(url, body, headers), daemon=True).start()
