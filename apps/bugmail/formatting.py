"""
plain text layout of the notification mails
"""
from bugdb.constants import BIT_DIRECT, BIT_WATCHING, REL_NAMES
from bugdb.helpers import wrap_hard

from .constants import (
    FORMAT_2_SIZE,
    FORMAT_3_SIZE,
    FORMAT_DOUBLE,
    FORMAT_TRIPLE,
    SEPARATOR,
    BugmailSettings,
)


def multiline_sprintf(format, args, sizes):
    """
    format the columns wrapping each one to its size

    the wrapped pieces are laid out side by side line by line
    and the trailing whitespace of every line is removed
    """
    parts = [
        wrap_hard("" if arg is None else str(arg), size).split("\n")
        for arg, size in zip(args, sizes)
    ]
    lines = []
    for index in range(max(len(part) for part in parts)):
        line = tuple(part[index] if index < len(part) else "" for part in parts)
        lines.append((format % line).rstrip())
    return "".join(line + "\n" for line in lines)


def three_columns(what, removed, added):
    return multiline_sprintf(FORMAT_TRIPLE, (what, removed, added), FORMAT_3_SIZE)


def two_columns(description, value):
    return multiline_sprintf(FORMAT_DOUBLE, (description, value), FORMAT_2_SIZE)


def diff_header(who):
    """header of the changes done by a single user"""
    return (
        f"\n{who} changed:\n\n"
        + three_columns("What    ", "Removed", "Added")
        + SEPARATOR
        + "\n"
    )


def reason_headers(relationships):
    """
    the X-Bugzilla-Reason and X-Bugzilla-Watch-Reason headers

    relationships maps the relationship to the bits of the direct
    and the watching reasons
    """

    def names(bit):
        return [
            REL_NAMES[relationship]
            for relationship, bits in sorted(relationships.items())
            if bits & bit
        ] or ["None"]

    return names(BIT_DIRECT), names(BIT_WATCHING)


def thread_headers(bug_id, user_id, is_new=False):
    """
    headers making the mails about a single bug into a thread

    the first mail about the bug carries the Message-ID which the
    following ones refer to
    """
    domain = BugmailSettings().thread_domain
    marker = f"<bug-{bug_id}-{user_id}@{domain}>"
    if is_new:
        return {"Message-ID": marker}
    return {"In-Reply-To": marker, "References": marker}
