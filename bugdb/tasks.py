from celery.utils.log import get_task_logger
from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from config.celery import app

logger = get_task_logger(__name__)


@app.task
def async_send_email(
    subject, to, body, reply_to=None, headers=None, html_body=None, from_email=None
):
    """
    send a single email message

    the recipients are given as a list of addresses
    """
    message = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=from_email or settings.MAILFROM,
        to=to,
        reply_to=reply_to,
        headers=headers or {},
    )
    if html_body:
        message.attach_alternative(html_body, "text/html")
    sent = message.send()
    logger.info(f"Sent '{subject}' to {', '.join(to)}")
    return sent
