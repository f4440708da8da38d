"""
Helpers for direct or development shell usage
"""

import json
import logging
import re
import textwrap
from datetime import datetime
from os import getenv
from typing import Any, Union

from celery._state import get_current_task
from django.conf import settings

from .constants import DATE_FMT, LOGIN_FORBIDDEN_CHARS
from .exceptions import BugdbException


def ensure_list(item):
    """
    helper to ensure that the item is list
    """
    if item is None:
        return []
    return list(item) if isinstance(item, (list, tuple, set)) else [item]


# Replaces strtobool from the deprecated distutils library
def strtobool(val: str):
    val = val.lower()
    if val in {"y", "yes", "t", "true", "on", "1"}:
        return True
    elif val in {"n", "no", "f", "false", "off", "0"}:
        return False

    raise ValueError(f"invalid truth value {val}")


def get_env(
    key: str,
    default: Union[None, str] = None,
    is_bool: bool = False,
    is_int: bool = False,
    is_json: bool = False,
) -> Any:
    """get environment variable"""
    if (is_bool and is_int) or (is_bool and is_json) or (is_int and is_json):
        raise BugdbException(
            "Expected environment variable cannot be of multiple types at the same time"
        )

    value = getenv(key, default)
    # consider empty string as empty value
    # as setting the value to non-existing env variable
    # in compose.yml results in an empty string
    if value == "":
        value = default

    if is_bool:
        value = strtobool(value)
    if is_int:
        value = int(value)
    if is_json:
        value = json.loads(value)

    return value


def trim(value):
    """strip the leading and trailing whitespace keeping empty values intact"""
    return value.strip() if value else value


def clean_text(value: str) -> str:
    """replace any run of control characters with a space and trim"""
    return trim(re.sub(r"[\x00-\x1F\x7F]+", " ", value or ""))


def split_list(value) -> list:
    """
    split a whitespace or comma separated text into a list

    lists are passed through with empty items dropped
    """
    if isinstance(value, str):
        value = re.split(r"[\s,]+", value)
    return [item for item in ensure_list(value) if item not in ("", None)]


def diff_lists(old, new):
    """
    compare two lists of values returning the pair (removed, added)

    each occurrence is matched at most once so the repeated
    values are compared as a multiset and the order is kept
    """
    removed = [str(value) for value in old]
    added = [str(value) for value in new]
    for value in list(removed):
        if value in added:
            added.remove(value)
            removed.remove(value)
    return removed, added


def wrap_hard(text: str, columns: int) -> str:
    """
    wrap the text so no line exceeds the given columns

    words longer than the line are broken and the
    existing line breaks are preserved
    """
    lines = []
    for line in str(text).split("\n"):
        # the lines are kept strictly shorter than the columns
        wrapped = textwrap.wrap(
            line,
            width=max(columns - 1, 1),
            break_long_words=True,
            expand_tabs=False,
            replace_whitespace=False,
        )
        lines.extend(wrapped or [""])
    return "\n".join(lines)


def format_time_decimal(value) -> str:
    """
    format a time tracking value with two decimals
    or with one decimal when the second one is a zero
    """
    formatted = "%.2f" % float(value)
    if formatted.endswith("0"):
        formatted = "%.1f" % float(value)
    return formatted


def validate_date(value: str) -> bool:
    """check that the value is an existing date in the YYYY-MM-DD format"""
    try:
        parsed = datetime.strptime(value, DATE_FMT)
    except (TypeError, ValueError):
        return False

    def normalize(date):
        # leading zeros of the month and the day do not matter
        year, month, day = date.split("-")
        return year, int(month), int(day)

    return normalize(parsed.strftime(DATE_FMT)) == normalize(value)


def validate_email_syntax(address: str) -> bool:
    """
    check the address against the configured email regexp
    and make sure it contains no forbidden characters
    """
    if not address:
        return False
    if not re.search(settings.EMAILREGEXP, address):
        return False
    return not any(char in LOGIN_FORBIDDEN_CHARS for char in address)


def login_to_email(login: str) -> str:
    """compose the email address from the login and the configured suffix"""
    return f"{login}{settings.EMAILSUFFIX}"


class TaskFormatter(logging.Formatter):
    """
    Custom formatter based on celery 'celery.utils.log.TaskFormatter'
    which injects the 'task_name' and 'task_id' into the logs whenever
    the logs are emitted during the Celery task execution
    """

    def format(self, record):
        task = get_current_task()
        if task and task.request:
            # Executed inside Celery task - inject task_name and task_id
            record.__dict__.update(task_id=f"[{task.request.id}]", task_name=task.name)
        else:
            # Executed outside Celery task - use name instead of the task_name
            # and omit the task_id
            record.__dict__.setdefault("task_name", record.__dict__.get("name"))
            record.__dict__.setdefault("task_id", "")
        return super().format(record)
