"""Invitation email delivery via the Resend HTTP API.

Delivery is best effort: a failed send is logged and reported to the
caller as ``False``; it never fails the grant operation that triggered it.
"""

import html

import httpx

from careshare.logging_config import get_logger

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDispatcher:
    """Sends caregiver invitation emails."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        portal_url: str,
        timeout: float = 10.0,
    ):
        self._api_key = api_key
        self._sender = sender
        self._portal_url = portal_url.rstrip("/")
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def invite_link(self, token: str) -> str:
        return f"{self._portal_url}/care/invite/{token}"

    async def send_invitation(
        self,
        to: str,
        owner_name: str,
        token: str,
        message: str | None = None,
    ) -> bool:
        """Send the invitation email. Returns True if the provider accepted it."""
        if not self.enabled:
            logger.warning("Email delivery not configured, invite email skipped")
            return False

        subject, text_body, html_body = format_invitation(
            owner_name, self.invite_link(token), message
        )
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._sender,
                        "to": [to],
                        "subject": subject,
                        "text": text_body,
                        "html": html_body,
                    },
                )
        except httpx.HTTPError as exc:
            logger.error("Invite email send failed", error=str(exc))
            return False

        if response.status_code >= 300:
            logger.error(
                "Invite email rejected by provider",
                status_code=response.status_code,
            )
            return False

        logger.info("Sent invite email")
        return True


def format_invitation(
    owner_name: str, invite_link: str, message: str | None
) -> tuple[str, str, str]:
    """Build (subject, text, html) for an invitation email."""
    subject = f"{owner_name} wants to share their health information with you"

    text_lines = [
        f"{owner_name} wants to share health info with you",
        "",
        f"You've been invited to view {owner_name}'s visits, medications, "
        "and care tasks.",
    ]
    if message:
        text_lines += ["", f'"{message}"']
    text_lines += ["", f"Accept the invitation: {invite_link}"]

    safe_name = html.escape(owner_name)
    quote = (
        f'<p style="font-style: italic;">&ldquo;{html.escape(message)}&rdquo;</p>'
        if message
        else ""
    )
    html_body = (
        f"<h1>{safe_name} wants to share health info with you</h1>"
        f"<p>You've been invited to view <strong>{safe_name}'s</strong> visits, "
        "medications, and care tasks.</p>"
        f"{quote}"
        f'<p><a href="{html.escape(invite_link)}">Accept Invitation</a></p>'
    )
    return subject, "\n".join(text_lines), html_body
