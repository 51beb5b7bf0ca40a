"""
Outbound email channels.

Two implementations share the same ``await send(to, subject, body)`` signature:
- EmailChannel: logs and records sends (demo and tests)
- SendGridEmailChannel: posts to the SendGrid v3 mail API with an httpx
  AsyncClient, so a slow provider never stalls the event loop

Design decisions:
- All sends are logged for visibility
- Channels track sent messages for test assertions
- Delivery failures are returned as results, never raised
- Failures can be simulated for testing
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

logger = logging.getLogger("email_channel")


@dataclass
class EmailResult:
    """
    Result of an email send attempt.

    Captures success/failure and metadata for debugging and testing.
    """
    success: bool
    recipient: str
    subject: str
    body: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} EMAIL to {self.recipient}: {self.subject}"


class EmailChannel:
    """
    Recording email channel.

    Logs email sends and keeps them for test assertions.
    Can simulate failures for testing error handling.
    """

    def __init__(self, fail_rate: float = 0.0, from_addr: str = "noreply@revend.co"):
        """
        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing.
            from_addr: Sender address (for logging)
        """
        self.fail_rate = fail_rate
        self.from_addr = from_addr
        self.sent_messages: list[EmailResult] = []

    async def send(self, to: str, subject: str, body: str) -> EmailResult:
        if random.random() < self.fail_rate:
            result = EmailResult(
                success=False,
                recipient=to,
                subject=subject,
                body=body,
                error="Simulated email delivery failure",
            )
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            result = EmailResult(success=True, recipient=to, subject=subject, body=body)
            logger.info(f"[EMAIL] From: {self.from_addr} | To: {to} | Subject: {subject}")
            logger.debug(f"[EMAIL BODY] {body}")

        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[EmailResult]:
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[EmailResult]:
        """Find a message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None


class SendGridEmailChannel:
    """
    Email channel backed by the SendGrid v3 ``mail/send`` endpoint.

    Bodies are sent as ``text/html``, matching the stored email templates.
    """

    def __init__(
        self,
        api_key: str,
        from_addr: str = "noreply@revend.co",
        url: str = "https://api.sendgrid.com/v3/mail/send",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: SendGrid API key (Bearer token)
            from_addr: Verified sender address
            url: Endpoint override, for tests or regional hosts
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.api_key = api_key
        self.from_addr = from_addr
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self.sent_messages: list[EmailResult] = []

    async def send(self, to: str, subject: str, body: str) -> EmailResult:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_addr},
            "subject": subject,
            "content": [{"type": "text/html", "value": body}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        error = None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
            if response.status_code >= 400:
                error = f"SendGrid returned {response.status_code}: {response.text[:200]}"
        except httpx.HTTPError as e:
            error = f"SendGrid request failed: {e}"

        result = EmailResult(
            success=error is None,
            recipient=to,
            subject=subject,
            body=body,
            error=error,
        )
        if error:
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {error}")
        else:
            logger.info(f"[EMAIL] via SendGrid To: {to} | Subject: {subject}")
        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        return len(self.sent_messages)
