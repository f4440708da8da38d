from datetime import datetime, timezone

import pytest
from freezegun import freeze_time

from apps.whine.core import compute_next_run, day_matches, mail_event, run_whines
from apps.whine.models import WhineEvent, WhineSchedule
from apps.whine.tasks import run_whines as run_whines_task
from bugdb.models import Bug
from bugdb.tests.factories import (
    BugFactory,
    ComponentFactory,
    GroupFactory,
    ProfileFactory,
    UserGroupMapFactory,
)

pytestmark = pytest.mark.unit


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def owner():
    return ProfileFactory(user__username="lead@example.com", realname="Team Lead")


@pytest.fixture
def event(owner):
    component = ComponentFactory(name="Engine")
    BugFactory(
        product=component.product,
        component=component,
        short_desc="engine stalls",
        bug_status="NEW",
    )
    BugFactory(
        product=component.product,
        component=component,
        short_desc="engine smokes",
        bug_status="RESOLVED",
        resolution="FIXED",
    )
    return WhineEvent.objects.create(
        owner=owner,
        subject="Open engine bugs",
        body="These bugs are still open:",
        query={"component": "Engine", "is_open": "true"},
    )


class TestDayMatches:
    @pytest.mark.parametrize(
        "run_day,day,matches",
        [
            ("All", utc(2026, 1, 4).date(), True),
            ("MON-FRI", utc(2026, 1, 5).date(), True),
            ("MON-FRI", utc(2026, 1, 4).date(), False),
            ("Sun", utc(2026, 1, 4).date(), True),
            ("Sun", utc(2026, 1, 5).date(), False),
            ("last", utc(2026, 2, 28).date(), True),
            ("last", utc(2026, 1, 30).date(), False),
            ("15", utc(2026, 1, 15).date(), True),
            ("31", utc(2026, 2, 28).date(), True),
            ("31", utc(2026, 1, 30).date(), False),
            ("Someday", utc(2026, 1, 5).date(), False),
        ],
    )
    def test_day_matches(self, run_day, day, matches):
        assert day_matches(run_day, day) is matches


class TestComputeNextRun:
    def test_later_today(self):
        now = utc(2026, 1, 5, 9, 0)
        assert compute_next_run("All", "10", now) == utc(2026, 1, 5, 10, 0)

    def test_tomorrow(self):
        now = utc(2026, 1, 5, 9, 0)
        assert compute_next_run("All", "8", now) == utc(2026, 1, 6, 8, 0)

    def test_weekdays(self):
        # Friday after the run time
        now = utc(2026, 1, 9, 9, 0)
        assert compute_next_run("MON-FRI", "8", now) == utc(2026, 1, 12, 8, 0)

    def test_weekday(self):
        now = utc(2026, 1, 5, 9, 0)
        assert compute_next_run("Sun", "0", now) == utc(2026, 1, 11, 0, 0)

    def test_last_day_of_month(self):
        now = utc(2026, 2, 10, 12, 0)
        assert compute_next_run("last", "0", now) == utc(2026, 2, 28, 0, 0)

    def test_short_month(self):
        now = utc(2026, 2, 10, 12, 0)
        assert compute_next_run("31", "6", now) == utc(2026, 2, 28, 6, 0)

    def test_period(self):
        now = utc(2026, 1, 5, 9, 7, 30)
        assert compute_next_run("All", "15m", now) == utc(2026, 1, 5, 9, 22)

    def test_never(self):
        assert compute_next_run("Someday", "0", utc(2026, 1, 5)) is None


class TestMailEvent:
    def test_mail(self, event, outbox):
        reader = ProfileFactory(user__username="reader@example.com")
        assert mail_event(event, reader)

        [message] = outbox
        assert message.to == ["reader@example.com"]
        assert message.subject == "Open engine bugs"
        assert message.extra_headers["X-Bugzilla-Type"] == "whine"
        assert "These bugs are still open:" in message.body
        assert "engine stalls" in message.body
        assert "engine smokes" not in message.body
        assert "Scheduled by Team Lead <lead@example.com>" in message.body

    def test_invisible_bugs_left_out(self, event, outbox):
        Bug.objects.get(short_desc="engine stalls").groups.add(
            GroupFactory(name="secret")
        )
        assert not mail_event(event, ProfileFactory())
        assert outbox == []

    def test_no_bugs(self, event, outbox):
        event.query = {"component": "Nonexistent"}
        event.save()
        assert not mail_event(event, ProfileFactory())

        event.mailifnobugs = True
        event.save()
        assert mail_event(event, ProfileFactory())
        assert "No bugs match the query." in outbox[0].body

    def test_invalid_query(self, event, outbox):
        event.query = {"votes": "abc"}
        event.mailifnobugs = True
        event.save()
        assert not mail_event(event, ProfileFactory())
        assert outbox == []


class TestRunWhines:
    def test_first_run_only_planned(self, event, owner, outbox):
        schedule = WhineSchedule.objects.create(
            event=event, run_day="All", run_time="8", mailto_user=owner
        )
        with freeze_time("2026-01-05 09:00:00"):
            assert run_whines() == 0
        schedule.refresh_from_db()
        assert schedule.run_next == utc(2026, 1, 6, 8, 0)
        assert outbox == []

    def test_due(self, event, owner, outbox):
        schedule = WhineSchedule.objects.create(
            event=event,
            run_day="All",
            run_time="8",
            mailto_user=owner,
            run_next=utc(2026, 1, 6, 8, 0),
        )
        with freeze_time("2026-01-06 08:05:00"):
            assert run_whines() == 1
        schedule.refresh_from_db()
        assert schedule.run_next == utc(2026, 1, 7, 8, 0)
        assert [message.to for message in outbox] == [["lead@example.com"]]

    def test_not_due(self, event, owner, outbox):
        WhineSchedule.objects.create(
            event=event, mailto_user=owner, run_next=utc(2026, 1, 7, 0, 0)
        )
        with freeze_time("2026-01-06 08:05:00"):
            assert run_whines() == 0

    def test_group(self, event, outbox):
        team = GroupFactory(name="engine-team", isbuggroup=False)
        for login in ("one@example.com", "two@example.com"):
            UserGroupMapFactory(
                profile=ProfileFactory(user__username=login), group=team
            )
        WhineSchedule.objects.create(
            event=event,
            mailto_type=WhineSchedule.MailtoType.GROUP,
            mailto_group=team,
            run_next=utc(2026, 1, 6, 0, 0),
        )
        with freeze_time("2026-01-06 08:05:00"):
            assert run_whines() == 2
        assert sorted(message.to[0] for message in outbox) == [
            "one@example.com",
            "two@example.com",
        ]

    def test_inactive_group(self, event, outbox):
        team = GroupFactory(name="engine-team", isbuggroup=False, isactive=False)
        UserGroupMapFactory(profile=ProfileFactory(), group=team)
        WhineSchedule.objects.create(
            event=event,
            mailto_type=WhineSchedule.MailtoType.GROUP,
            mailto_group=team,
            run_next=utc(2026, 1, 6, 0, 0),
        )
        with freeze_time("2026-01-06 08:05:00"):
            assert run_whines() == 0

    def test_mail_disabled(self, event, outbox):
        WhineSchedule.objects.create(
            event=event,
            mailto_user=ProfileFactory(disable_mail=True),
            run_next=utc(2026, 1, 6, 0, 0),
        )
        with freeze_time("2026-01-06 08:05:00"):
            assert run_whines() == 0

    def test_task(self, event, owner, outbox):
        WhineSchedule.objects.create(
            event=event, mailto_user=owner, run_next=utc(2026, 1, 6, 0, 0)
        )
        with freeze_time("2026-01-06 08:05:00"):
            assert run_whines_task() == "Sent 1 whine mails"
