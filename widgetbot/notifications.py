"""Best-effort transcript emails through the Resend HTTP API."""

from __future__ import annotations

import datetime
import html
from typing import TYPE_CHECKING

import httpx

from .config import config

if TYPE_CHECKING:
    from .models import ConversationTurn, Tenant

logger = config.get_logger(__name__)


def format_transcript(turns: list[ConversationTurn]) -> str:
    """Render turns as ``Customer:`` / ``AI:`` paragraphs.

    Returns:
        Plain-text transcript.
    """
    return "\n\n".join(
        f"{'Customer' if turn.role == 'user' else 'AI'}: {turn.content}"
        for turn in turns
        if turn.role != "system"
    )


class TranscriptNotifier:
    """Sends a conversation transcript after a successful chat turn.

    Failures are logged and never raised: notification is not part of the
    chat contract.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        sender: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config.get_resend_api_key()
        self.api_url = api_url or config.RESEND_API_URL
        self.sender = sender or config.NOTIFICATION_FROM_ADDRESS
        self.http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def build_email(
        self,
        tenant: Tenant,
        turns: list[ConversationTurn],
        recipient: str,
    ) -> dict[str, object]:
        """Build the Resend request body.

        Returns:
            JSON payload with sender, recipient, subject and HTML body.
        """
        business = tenant.business_name or "Chatbot"
        sent_at = datetime.datetime.now(tz=datetime.UTC).strftime("%Y-%m-%d %H:%M UTC")
        body = html.escape(format_transcript(turns))
        return {
            "from": self.sender,
            "to": [recipient],
            "subject": f"New Conversation - {business}",
            "html": (
                "<h2>New Chatbot Conversation</h2>"
                f"<p><strong>Business:</strong> {html.escape(business)}</p>"
                f"<p><strong>Time:</strong> {sent_at}</p>"
                "<h3>Conversation:</h3>"
                '<div style="background-color: #f5f5f5; padding: 20px; '
                "border-radius: 8px; white-space: pre-wrap; font-family: monospace;\">"
                f"{body}</div>"
            ),
        }

    def send_transcript(
        self,
        tenant: Tenant,
        turns: list[ConversationTurn],
        recipient: str,
    ) -> bool:
        """Email the transcript to ``recipient``.

        Returns:
            True if the provider accepted the email, False otherwise.
        """
        if not self.enabled:
            logger.info("RESEND_API_KEY not set; skipping transcript email")
            return False
        if not recipient:
            return False

        payload = self.build_email(tenant, turns, recipient)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            **config.get_api_headers(),
        }
        try:
            if self.http_client is not None:
                response = self.http_client.post(
                    self.api_url, json=payload, headers=headers
                )
            else:
                with httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS) as client:
                    response = client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send email notification to %s", recipient)
            return False

        logger.info("Transcript for tenant %s emailed to %s", tenant.id, recipient)
        return True
