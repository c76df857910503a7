import logging
import re
from typing import List, Optional, Union

import requests

from fulfillment.config import settings

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


def is_valid_email(email):
    if isinstance(email, list):
        return all(is_valid_email(e) for e in email)

    if not email:
        return False

    return re.match(r"[^@]+@[^@]+\.[^@]+", email) is not None


def send_email(to: Union[str, List[str]], subject: str, html: str) -> Optional[str]:
    """
    Send email via Brevo.

    Returns the provider message id, or None when nothing was sent.
    """
    recipients = to if isinstance(to, list) else [to]
    valid_emails = [e for e in recipients if is_valid_email(e)]

    if not valid_emails:
        logger.warning(f"No valid emails found: {to}")
        return None

    payload = {
        "sender": {
            "email": settings.mail_from,
            "name": settings.store_name,
        },
        "to": [{"email": e} for e in valid_emails],
        "subject": subject,
        "htmlContent": html,
    }

    headers = {
        "api-key": settings.brevo_api_key,
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(
            BREVO_API_URL,
            json=payload,
            headers=headers,
            timeout=10,
        )
    except requests.RequestException:
        logger.exception("Brevo email request failed")
        return None

    if response.status_code >= 400:
        logger.error(f"Brevo email failed ({response.status_code}): {response.text}")
        return None

    try:
        message_id = response.json().get("messageId")
    except ValueError:
        message_id = None

    logger.info(f"Brevo email sent to {valid_emails}")
    return message_id or "sent"
