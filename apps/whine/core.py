"""
Whine schedules

    mails the users the bugs of the scheduled queries
"""
import calendar
import logging
import re
from datetime import datetime, timedelta

from django.db.models import Q
from django.template.loader import render_to_string
from django.utils import timezone

from bugdb.filters import BugFilter
from bugdb.models import Bug
from bugdb.tasks import async_send_email

from .models import WhineSchedule

logger = logging.getLogger(__name__)

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def day_matches(run_day, day):
    """whether the date matches the run_day pattern"""
    if run_day == "All":
        return True
    if run_day == "MON-FRI":
        return day.weekday() < 5
    if run_day in WEEKDAYS:
        return WEEKDAYS.index(run_day) == day.weekday()
    if run_day == "last":
        return day.day == calendar.monthrange(day.year, day.month)[1]
    if run_day.isdigit():
        # the days missing in the short months fall on their last day
        last = calendar.monthrange(day.year, day.month)[1]
        return min(int(run_day), last) == day.day
    return False


def compute_next_run(run_day, run_time, now=None):
    """
    the first moment after now the schedule is due

    the periods in minutes ignore the run_day
    """
    now = now or timezone.now()
    period = re.fullmatch(r"(\d+)m", run_time or "")
    if period:
        minutes = max(int(period.group(1)), 1)
        return now.replace(second=0, microsecond=0) + timedelta(minutes=minutes)

    hour = int(run_time or 0) % 24
    day = now.date()
    # at most two months to find the matching day
    for offset in range(62):
        candidate = day + timedelta(days=offset)
        if not day_matches(run_day, candidate):
            continue
        moment = timezone.make_aware(
            datetime(candidate.year, candidate.month, candidate.day, hour),
            timezone.get_current_timezone(),
        )
        if moment > now:
            return moment
    return None


def event_bugs(event, user):
    """
    bugs matching the event query which the user can see

    None is returned when the query is no longer valid
    """
    queryset = Bug.objects.visible_to(user).select_related(
        "product", "component", "assigned_to__user"
    )
    filterset = BugFilter(event.query, queryset=queryset)
    if not filterset.is_valid():
        logger.warning(f"Whine event {event.pk} has an invalid query: {filterset.errors}")
        return None
    return filterset.qs.order_by("pk")


def mail_event(event, user):
    """mail the event to the user returning whether it was sent"""
    bugs = event_bugs(event, user)
    if bugs is None:
        return False
    bugs = list(bugs)
    if not bugs and not event.mailifnobugs:
        return False

    body = render_to_string(
        "whine/whine.txt",
        {"event": event, "bugs": bugs, "author": event.owner.identity},
    )
    async_send_email.delay(
        subject=event.subject or f"Whine event {event.pk}",
        to=[user.email],
        body=body,
        headers={"X-Bugzilla-Type": "whine"},
    )
    return True


def run_whines(now=None):
    """
    mail every due schedule and plan its next run

    returns the number of the mails sent
    """
    now = now or timezone.now()
    schedules = WhineSchedule.objects.filter(
        Q(run_next__lte=now) | Q(run_next__isnull=True)
    ).select_related("event__owner__user", "mailto_user__user", "mailto_group")

    sent = 0
    for schedule in schedules:
        # schedules never run before are only planned
        if schedule.run_next is not None:
            for user in schedule.mailto_users():
                if not user.email_enabled:
                    continue
                sent += mail_event(schedule.event, user)

        schedule.run_next = compute_next_run(schedule.run_day, schedule.run_time, now)
        schedule.save(update_fields=["run_next"])
        logger.info(f"Whine schedule {schedule.pk} planned for {schedule.run_next}")
    return sent
