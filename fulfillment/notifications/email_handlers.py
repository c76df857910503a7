from typing import Optional

from fulfillment.config import settings
from fulfillment.services.email_service import send_email
from fulfillment.utils.template import render_template


def send_user_email(template, subject, to, **ctx) -> Optional[str]:
    html = render_template(template, subject=subject, **ctx)
    return send_email(to=to, subject=subject, html=html)


def send_admin_email(template, subject, admin_emails=None, **ctx) -> Optional[str]:
    html = render_template(template, subject=subject, **ctx)
    return send_email(to=list(admin_emails or settings.admin_emails), subject=subject, html=html)
