"""Care team invitation emails.

Sends through the Resend HTTP API when RESEND_API_KEY is set. Without a
key (local/dev) the message is written to the log instead and treated as
sent. Sending is best-effort: callers log failures and never fail the
request because of them.
"""

from __future__ import annotations

import asyncio
import html
import logging
import random

import httpx

from careteam.core.config import settings
from careteam.core.scopes import scope_labels
from careteam.core.structured_logging import build_log_context
from careteam.db.models import Invitation
from careteam.types import JsonObject

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0
RETRY_STATUSES = {429, 500, 502, 503, 504}


def build_invite_url(token: str, base_url: str | None = None) -> str:
    """Build the invite acceptance URL."""
    base = (base_url or settings.FRONTEND_URL).rstrip("/")
    return f"{base}/invites/{token}"


def build_invite_subject(sender_name: str, child_name: str) -> str:
    return f"{sender_name} invited you to join {child_name}'s care team"


def build_invite_text(
    sender_name: str,
    child_name: str,
    scopes: list[str],
    invite_url: str,
    expires_on: str,
) -> str:
    """Build plain text email body for invite."""
    return f"""Hello,

{sender_name} has invited you to join the care team for {child_name}.

You will be granted access to: {", ".join(scopes)}

Accept your invitation here:
{invite_url}

This invitation expires on {expires_on}.

If you don't have an account yet, you'll be able to create one when accepting the invitation.
If you believe you received this email in error, you can safely ignore it.
"""


def build_invite_html(
    sender_name: str,
    child_name: str,
    scopes: list[str],
    invite_url: str,
    expires_on: str,
) -> str:
    """Build HTML email body for invite. All interpolated values are escaped."""
    e = html.escape
    items = "".join(f"<li>{e(s)}</li>" for s in scopes)
    return (
        "<p>Hello,</p>"
        f"<p><strong>{e(sender_name)}</strong> has invited you to join the care team for "
        f"<strong>{e(child_name)}</strong>.</p>"
        f"<p>You will be granted access to:</p><ul>{items}</ul>"
        f'<p><a href="{e(invite_url, quote=True)}">Accept invitation</a></p>'
        f"<p>This invitation expires on {e(expires_on)}.</p>"
        "<p>If you believe you received this email in error, you can safely ignore it.</p>"
    )


def _retry_delay(attempt: int) -> float:
    delay = min(RESEND_RETRY_MAX_DELAY, RESEND_RETRY_BASE_DELAY * (2**attempt))
    return delay + random.uniform(0, delay / 2)


async def _post_resend(payload: dict[str, object], idempotency_key: str) -> httpx.Response:
    """POST to Resend with exponential backoff on transport errors and retryable statuses."""
    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
        "Idempotency-Key": idempotency_key,
    }
    async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:
        for attempt in range(RESEND_MAX_ATTEMPTS):
            last_attempt = attempt >= RESEND_MAX_ATTEMPTS - 1
            try:
                response = await client.post(RESEND_SEND_URL, headers=headers, json=payload)
            except httpx.RequestError as exc:
                if last_attempt:
                    raise
                logger.warning("Resend request failed, retrying", exc_info=exc)
                await asyncio.sleep(_retry_delay(attempt))
                continue

            if response.status_code in RETRY_STATUSES and not last_attempt:
                logger.warning("Resend returned %s, retrying", response.status_code)
                await asyncio.sleep(_retry_delay(attempt))
                continue
            return response
    return response


async def send_invite_email(invite: Invitation) -> JsonObject:
    """
    Send the invitation email to the bound recipient.

    Returns:
        {"success": True, "message_id": "..."} or {"success": False, "error": "..."}
    """
    if not invite.recipient_email:
        return {"success": False, "error": "Invitation has no recipient email"}

    sender_name = invite.sender.name if invite.sender else "A parent"
    child_name = invite.child.name
    scopes = scope_labels(invite.scope_set)
    invite_url = build_invite_url(invite.token)
    expires_on = invite.expires_at.strftime("%A, %B %d, %Y")

    subject = build_invite_subject(sender_name, child_name)
    text = build_invite_text(sender_name, child_name, scopes, invite_url, expires_on)
    body_html = build_invite_html(sender_name, child_name, scopes, invite_url, expires_on)
    log_context = build_log_context(child_id=str(invite.child_id), invite_id=str(invite.id))

    if not settings.RESEND_API_KEY:
        if settings.ENV != "dev":
            # Body carries the invite token; never log it outside dev
            logger.warning("Invite email not sent: RESEND_API_KEY missing", extra=log_context)
            return {"success": False, "error": "Email sender not configured"}
        logger.info("Invite email (dev mode, not sent): %s\n%s", subject, text, extra=log_context)
        return {"success": True, "message_id": None}

    payload: dict[str, object] = {
        "from": settings.EMAIL_FROM,
        "to": [invite.recipient_email],
        "subject": subject,
        "html": body_html,
        "text": text,
    }
    try:
        response = await _post_resend(payload, idempotency_key=f"invite-{invite.id}")
    except httpx.RequestError as exc:
        logger.warning("Invite email transport error", exc_info=exc, extra=log_context)
        return {"success": False, "error": "Email provider unreachable"}

    if 200 <= response.status_code < 300:
        message_id = response.json().get("id")
        logger.info("Invite email sent", extra=log_context)
        return {"success": True, "message_id": message_id}

    logger.warning("Invite email rejected with status %s", response.status_code, extra=log_context)
    return {"success": False, "error": f"Email provider returned {response.status_code}"}
