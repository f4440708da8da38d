from celery.utils.log import get_task_logger
from django.template.loader import render_to_string

from bugdb.tasks import async_send_email
from config.celery import app

from .constants import BugmailSettings
from .core import send
from .formatting import thread_headers

logger = get_task_logger(__name__)


@app.task
def send_bugmail(bug_id, forced=None):
    """mail the changes of the bug since the last bugmail"""
    if not BugmailSettings().enabled:
        logger.info(f"Bugmail disabled, skipping bug {bug_id}")
        return None
    return send(bug_id, forced)


@app.task
def send_flag_mail(to, subject, context, bug_id, user_id=0):
    """mail a single flag change notification"""
    async_send_email.delay(
        subject=subject,
        to=[to],
        body=render_to_string("bugmail/flag.txt", context),
        headers={"X-Bugzilla-Type": "request", **thread_headers(bug_id, user_id)},
    )
