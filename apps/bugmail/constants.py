"""
Bugmail constants
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from bugdb.constants import (
    REL_ASSIGNEE,
    REL_CC,
    REL_GLOBAL_WATCHER,
    REL_QA,
    REL_REPORTER,
    REL_VOTER,
)


class BugmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BUGMAIL_")

    # whether the bug changes are mailed at all
    enabled: bool = True
    # domain part of the generated Message-ID headers
    thread_domain: str = "bugdb"


FORMAT_TRIPLE = "%19s|%-28s|%-28s"
FORMAT_3_SIZE = (19, 28, 28)
FORMAT_DOUBLE = "%19s %-55s"
FORMAT_2_SIZE = (19, 55)

SEPARATOR = "-" * 76

REASON_TEXTS = {
    REL_ASSIGNEE: "You are the assignee for the bug.",
    REL_REPORTER: "You reported the bug.",
    REL_QA: "You are the QA contact for the bug.",
    REL_CC: "You are on the CC list for the bug.",
    REL_VOTER: "You are a voter for the bug.",
    REL_GLOBAL_WATCHER: "You are watching all bug changes.",
}

WATCH_REASON_TEXTS = {
    REL_ASSIGNEE: "You are watching the assignee of the bug.",
    REL_REPORTER: "You are watching the reporter.",
    REL_QA: "You are watching the QA contact of the bug.",
    REL_CC: "You are watching someone on the CC list of the bug.",
    REL_VOTER: "You are watching a voter for the bug.",
}
