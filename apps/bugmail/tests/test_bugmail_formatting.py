import pytest

from apps.bugmail.flags import flag_action
from apps.bugmail.formatting import (
    diff_header,
    multiline_sprintf,
    reason_headers,
    thread_headers,
    three_columns,
    two_columns,
)
from bugdb.constants import BIT_DIRECT, BIT_WATCHING, REL_ASSIGNEE, REL_CC, REL_REPORTER
from bugdb.models import Flag
from bugdb.tests.factories import BugFactory, FlagTypeFactory, ProfileFactory

pytestmark = pytest.mark.unit


class TestColumns:
    def test_three_columns(self):
        line = three_columns("Status", "NEW", "ASSIGNED")
        assert line == "             Status|NEW                         |ASSIGNED\n"

    def test_two_columns(self):
        assert two_columns("Summary:", "crash") == "           Summary: crash\n"

    def test_wrapping(self):
        text = multiline_sprintf("%-5s|%-5s", ("abcdefgh", "x"), (5, 5))
        assert text.split("\n")[:2] == ["abcd |x", "efgh |"]
        assert text.count("\n") == 2

    def test_none_value(self):
        assert two_columns("Deadline:", None) == "          Deadline:\n"

    def test_diff_header(self):
        header = diff_header("Rep Orter <reporter@example.com>")
        assert header.startswith("\nRep Orter <reporter@example.com> changed:\n\n")
        assert header.endswith("-" * 76 + "\n")


class TestHeaders:
    def test_reason_headers(self):
        reasons, watch_reasons = reason_headers(
            {
                REL_ASSIGNEE: BIT_DIRECT,
                REL_CC: BIT_DIRECT | BIT_WATCHING,
                REL_REPORTER: BIT_WATCHING,
            }
        )
        assert reasons == ["AssignedTo", "CC"]
        assert watch_reasons == ["Reporter", "CC"]

    def test_no_reasons(self):
        assert reason_headers({}) == (["None"], ["None"])

    def test_thread_headers_new(self):
        assert thread_headers(7, 3, is_new=True) == {"Message-ID": "<bug-7-3@bugdb>"}

    def test_thread_headers_change(self):
        assert thread_headers(7, 3) == {
            "In-Reply-To": "<bug-7-3@bugdb>",
            "References": "<bug-7-3@bugdb>",
        }

    def test_thread_domain(self, monkeypatch):
        monkeypatch.setenv("BUGMAIL_THREAD_DOMAIN", "bugs.example.com")
        assert thread_headers(7, 3, is_new=True) == {
            "Message-ID": "<bug-7-3@bugs.example.com>"
        }


class TestFlagAction:
    @pytest.fixture
    def flags(self):
        review = FlagTypeFactory(name="review")
        bug = BugFactory()
        requester = ProfileFactory(user__username="requester@example.com")
        requestee = ProfileFactory(user__username="reviewer@example.com")

        def make(status, setter=requester, **kwargs):
            return Flag(type=review, bug=bug, status=status, setter=setter, **kwargs)

        return make, requestee

    def test_request(self, flags):
        make, requestee = flags
        assert flag_action(make("?", requestee=requestee), None) == (
            "asked reviewer@example.com for review"
        )

    def test_request_anybody(self, flags):
        make, _ = flags
        assert flag_action(make("?"), None) == "asked the wider audience for review"

    def test_granted_request(self, flags):
        make, requestee = flags
        assert flag_action(make("+", setter=requestee), make("?")) == (
            "granted requester@example.com's request for review"
        )

    def test_denied(self, flags):
        make, _ = flags
        assert flag_action(make("-"), None) == "denied review"

    def test_canceled_request(self, flags):
        make, _ = flags
        assert flag_action(None, make("?")) == (
            "canceled requester@example.com's request for review"
        )
