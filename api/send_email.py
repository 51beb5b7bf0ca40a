"""
The ``send-email`` server-side function.

Invoked with ``{"type": ..., "userId": ..., **variables}``. It:
- Looks up the recipient's email and name in profiles
- Looks up the template for ``type`` in email_templates
- Fills ``{{key}}`` placeholders from the variables plus ``userName``
- Sends through the configured email channel

Design decisions:
- Templates missing from the table fall back to the built-in defaults;
  unknown types are an error
- Every failure surfaces as RemoteError, which the HTTP layer turns into a
  400 ``{"error": message}``
- The channel is SendGrid when an API key is configured, the recording
  channel otherwise
"""

import logging
from typing import Any, Optional, Union

from backend.client import RemoteService, get_remote_service
from backend.errors import RemoteError
from shared.channels import EmailChannel, SendGridEmailChannel
from shared.config import TableNames, get_settings
from shared.models import EmailTemplate
from shared.templates import DEFAULT_TEMPLATES, render_template
from stores.email_service import SEND_EMAIL_FUNCTION

logger = logging.getLogger("send_email_function")

Channel = Union[EmailChannel, SendGridEmailChannel]


def default_channel() -> Channel:
    settings = get_settings()
    if settings.sendgrid_api_key:
        return SendGridEmailChannel(
            api_key=settings.sendgrid_api_key,
            from_addr=settings.email_from,
            url=settings.sendgrid_url,
        )
    return EmailChannel(from_addr=settings.email_from)


class SendEmailFunction:
    """
    Callable registered on the functions client under ``send-email``.

    Example:
        function = SendEmailFunction(service=service, channel=EmailChannel())
        service.functions.register("send-email", function)
        await service.functions.invoke("send-email", {"type": "welcome", "userId": uid})
    """

    def __init__(
        self,
        service: Optional[RemoteService] = None,
        channel: Optional[Channel] = None,
        tables: Optional[TableNames] = None,
    ):
        self.service = service or get_remote_service()
        self.channel = channel or default_channel()
        self.tables = tables or get_settings().tables

    async def _get_recipient(self, user_id: Optional[str]) -> dict[str, Any]:
        if not user_id:
            raise RemoteError("userId is required")
        result = await (
            self.service.table(self.tables.profiles)
            .select("email, name")
            .eq("id", user_id)
            .single()
            .execute()
        )
        return result.data

    async def _get_template(self, email_type: Optional[str]) -> EmailTemplate:
        try:
            result = await (
                self.service.table(self.tables.email_templates)
                .select("*")
                .eq("type", email_type)
                .single()
                .execute()
            )
            return EmailTemplate.model_validate(result.data)
        except RemoteError as e:
            if e.is_no_rows and email_type in DEFAULT_TEMPLATES:
                return DEFAULT_TEMPLATES[email_type]
            raise

    async def __call__(self, body: dict[str, Any]) -> dict[str, Any]:
        payload = dict(body)
        email_type = payload.pop("type", None)
        user_id = payload.pop("userId", None)

        recipient = await self._get_recipient(user_id)
        template = await self._get_template(email_type)
        subject, content = render_template(template, {**payload, "userName": recipient.get("name")})

        if not recipient.get("email"):
            raise RemoteError(f"Profile {user_id} has no email address")

        result = await self.channel.send(recipient["email"], subject, content)
        if not result.success:
            logger.error(f"Failed to send {email_type} email to {user_id}: {result.error}")
            raise RemoteError("Failed to send email")

        logger.info(f"Sent {email_type} email to {recipient['email']}")
        return {"success": True}


def register_send_email(
    service: RemoteService,
    channel: Optional[Channel] = None,
) -> SendEmailFunction:
    """Create the function and register it on ``service``."""
    function = SendEmailFunction(service=service, channel=channel)
    service.functions.register(SEND_EMAIL_FUNCTION, function)
    return function
