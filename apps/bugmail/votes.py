"""
vote removal notifications
"""
from django.template.loader import render_to_string

from bugdb.tasks import async_send_email

from .core import bug_url


def send_votes_removed(notifications):
    """mail the voters whose votes were reduced"""
    for notification in notifications:
        voter = notification["voter"]
        if not voter.email_enabled:
            continue
        context = {**notification, "url": bug_url(notification["bug_id"])}
        async_send_email.delay(
            subject=f"[Bug {notification['bug_id']}] Some or all of your votes have been removed.",
            to=[voter.email],
            body=render_to_string("bugmail/votes_removed.txt", context),
        )
