"""
Email templates and placeholder rendering.

Templates live in the remote ``email_templates`` table; the definitions below
are the defaults used to seed it. Content uses ``{{key}}`` placeholders which
the send-email function fills from the invocation payload plus the
recipient's ``userName``.

Design decisions:
- Only keys that are supplied get replaced; unknown placeholders stay as-is
- Values are stringified, ``None`` renders as an empty string
- Subjects go through the same substitution as bodies
"""

import re
from typing import Any

from shared.models import EmailTemplate

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class EmailTypes:
    """
    Email type names accepted by the send-email function.

    Using constants prevents typos and makes it easy to see all email types.
    """
    VERIFICATION = "verification"
    WELCOME = "welcome"
    PASSWORD_RESET = "password_reset"
    ORDER_CONFIRMATION = "order_confirmation"
    LISTING_INTEREST = "listing_interest"
    MESSAGE_RECEIVED = "message_received"


def render_template(template: EmailTemplate, variables: dict[str, Any]) -> tuple[str, str]:
    """
    Render a template with the provided variables.

    Returns:
        Tuple of (subject, body)
    """
    def substitute(text: str) -> str:
        def replace(match: re.Match) -> str:
            key = match.group(1)
            if key not in variables:
                return match.group(0)
            value = variables[key]
            return "" if value is None else str(value)

        return _PLACEHOLDER.sub(replace, text)

    return substitute(template.subject), substitute(template.content)


# =============================================================================
# Default template definitions
# =============================================================================

DEFAULT_TEMPLATES: dict[str, EmailTemplate] = {
    EmailTypes.WELCOME: EmailTemplate(
        type=EmailTypes.WELCOME,
        subject="Welcome to Revend",
        content="<p>Hi {{userName}},</p><p>Your Revend account is ready. "
                "Start browsing refurbished IT equipment or list your own batches.</p>",
    ),
    EmailTypes.VERIFICATION: EmailTemplate(
        type=EmailTypes.VERIFICATION,
        subject="Verify your email address",
        content="<p>Hi {{userName}},</p><p>Please confirm {{email}} to finish setting up your account.</p>",
    ),
    EmailTypes.PASSWORD_RESET: EmailTemplate(
        type=EmailTypes.PASSWORD_RESET,
        subject="Reset your Revend password",
        content="<p>Hi {{userName}},</p><p>We received a password reset request for {{email}}.</p>",
    ),
    EmailTypes.ORDER_CONFIRMATION: EmailTemplate(
        type=EmailTypes.ORDER_CONFIRMATION,
        subject="Order confirmed",
        content="<p>Hi {{userName}},</p><p>Your order {{orderId}} has been confirmed.</p>",
    ),
    EmailTypes.LISTING_INTEREST: EmailTemplate(
        type=EmailTypes.LISTING_INTEREST,
        subject="A buyer is interested in your listing",
        content="<p>Hi {{userName}},</p><p>Someone asked about listing {{listingId}}:</p>"
                "<blockquote>{{message}}</blockquote>",
    ),
    EmailTypes.MESSAGE_RECEIVED: EmailTemplate(
        type=EmailTypes.MESSAGE_RECEIVED,
        subject="You have a new message",
        content="<p>Hi {{userName}},</p><p>New message from {{senderId}}:</p>"
                "<blockquote>{{messagePreview}}</blockquote>",
    ),
}
