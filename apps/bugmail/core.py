"""
Bug change notifications

    computes who is involved in the bug change and in which roles
    and mails everybody who can see the bug and wants to know
"""
import logging
import re
from collections import defaultdict

from django.conf import settings
from django.template.loader import render_to_string
from django.utils import timezone

from apps.workflows.workflow import WorkflowFramework
from bugdb.constants import (
    BIT_DIRECT,
    BIT_WATCHING,
    CMT_ATTACHMENT_CREATED,
    EVT_ADDED_REMOVED,
    EVT_ATTACHMENT,
    EVT_BUG_CREATED,
    EVT_CHANGED_BY_ME,
    EVT_COMMENT,
    EVT_DEPEND_BLOCK,
    EVT_OTHER,
    EVT_UNCONFIRMED,
    FIELD_EVENTS,
    REL_ASSIGNEE,
    REL_CC,
    REL_GLOBAL_WATCHER,
    REL_QA,
    REL_REPORTER,
    REL_VOTER,
    TIMETRACKING_FIELDS,
)
from bugdb.helpers import format_time_decimal, split_list, trim, wrap_hard
from bugdb.models import Bug, BugActivity, FieldDefinition, Profile, Vote, Watch
from bugdb.tasks import async_send_email

from .constants import REASON_TEXTS, SEPARATOR, WATCH_REASON_TEXTS
from .formatting import (
    diff_header,
    reason_headers,
    thread_headers,
    three_columns,
    two_columns,
)

logger = logging.getLogger(__name__)

COMMENT_COLS = 80


def bug_url(bug_id):
    return f"{settings.URLBASE}show_bug.cgi?id={bug_id}"


def bug_values(bug):
    """current values of the bug fields as shown in the mail"""
    values = {
        "short_desc": bug.short_desc,
        "alias": bug.alias or "",
        "product": bug.product.name,
        "component": bug.component.name,
        "version": bug.version,
        "rep_platform": bug.rep_platform,
        "op_sys": bug.op_sys,
        "bug_status": bug.bug_status,
        "resolution": bug.resolution,
        "bug_severity": bug.bug_severity,
        "priority": bug.priority,
        "bug_file_loc": bug.bug_file_loc,
        "status_whiteboard": bug.status_whiteboard,
        "target_milestone": bug.target_milestone,
        "keywords": ", ".join(bug.keyword_names),
        "assigned_to": bug.assigned_to.login,
        "reporter": bug.reporter.login,
        "qa_contact": bug.qa_contact.login if bug.qa_contact_id else "",
        "cc": ", ".join(bug.cc_logins),
        "dependson": ",".join(map(str, bug.dependson_ids)),
        "blocked": ",".join(map(str, bug.blocked_ids)),
        "bug_group": ", ".join(bug.group_names),
        "estimated_time": format_time_decimal(bug.estimated_time),
        "deadline": bug.deadline.isoformat() if bug.deadline else "",
    }
    return values


def collect_diffs(bug, start, end):
    """
    the activity of the bug in the given time window

    everything is collected when there is no start
    """
    activity = bug.activity.select_related("field", "who__user", "attachment")
    if start is not None:
        activity = activity.filter(bug_when__gt=start, bug_when__lte=end)

    diffs = []
    for entry in activity.order_by("bug_when", "pk"):
        description = entry.field.description
        what = description
        if entry.attachment_id:
            what = re.sub(
                r"^(Attachment )?", f"Attachment #{entry.attachment_id} ", what, count=1
            )
        removed, added = entry.removed, entry.added
        if entry.field.name in ("estimated_time", "remaining_time"):
            removed = format_time_decimal(removed or 0)
            added = format_time_decimal(added or 0)
        diffs.append(
            {
                "who": entry.who.login,
                "fullwho": entry.who.identity,
                "description": description,
                "what": what,
                "when": entry.bug_when,
                "removed": removed,
                "added": added,
                "fieldname": entry.field.name,
                "isprivate": bool(entry.attachment and entry.attachment.isprivate),
            }
        )
    return diffs


def diff_parts(diffs):
    """split the diffs into the text parts each with the header of its author"""
    parts = []
    last_who = None
    header = ""
    for diff in diffs:
        if diff["who"] != last_who:
            last_who = diff["who"]
            header = diff_header(diff["fullwho"])
        parts.append(
            {
                "header": header,
                "fieldname": diff["fieldname"],
                "isprivate": diff["isprivate"],
                "text": three_columns(diff["what"], diff["removed"], diff["added"]),
            }
        )
    return parts


def dependency_text(bug, start, end, new_depbugs):
    """
    the text about the bugs this one depends on which changed
    between open and closed along with the ids of all the
    dependencies mentioned in the activity

    the dependencies just added are not reported
    """
    workflow = WorkflowFramework()
    activity = (
        BugActivity.objects.filter(
            bug__blocking_rows__blocked=bug,
            field__name__in=("bug_status", "resolution"),
            bug_when__gt=start,
            bug_when__lte=end,
        )
        .exclude(bug_id__in=new_depbugs)
        .select_related("bug", "field")
        .order_by("bug_when", "bug_id", "pk")
    )

    deptext = ""
    this_diff = ""
    last_bug = None
    interesting = False
    depbugs = []
    for entry in activity:
        if entry.bug_id != last_bug:
            if interesting:
                deptext += this_diff
            last_bug = entry.bug_id
            this_diff = (
                f"\nBug {bug.pk} depends on bug {entry.bug_id}, which changed state.\n\n"
                f"Bug {entry.bug_id} Summary: {entry.bug.short_desc}\n"
                f"{bug_url(entry.bug_id)}\n\n"
                + three_columns("What    ", "Old Value", "New Value")
                + SEPARATOR
                + "\n"
            )
            interesting = False
        this_diff += three_columns(entry.field.description, entry.removed, entry.added)
        if entry.field.name == "bug_status" and workflow.is_open_state(
            entry.removed
        ) != workflow.is_open_state(entry.added):
            interesting = True
        depbugs.append(entry.bug_id)

    if interesting:
        deptext += this_diff
    return trim(deptext), depbugs


def _in_login_list(login, value):
    return login in [item.strip() for item in (value or "").split(",")]


def wants_bug_mail(
    profile, bug, relationship, diffs, comments, dep_text, changer, is_new
):
    """
    whether the user wants the mail about the bug change
    in the given relationship to the bug
    """
    events = set()
    for diff in diffs:
        events.add(FIELD_EVENTS.get(diff["description"], EVT_OTHER))

        # the role of the user itself changed
        if (diff["description"] == "AssignedTo" and relationship == REL_ASSIGNEE) or (
            diff["description"] == "QAContact" and relationship == REL_QA
        ):
            events.add(EVT_ADDED_REMOVED)

        if diff["description"] == "CC" and _in_login_list(
            profile.login, diff["removed"]
        ) != _in_login_list(profile.login, diff["added"]):
            events.add(EVT_ADDED_REMOVED)

    if is_new:
        events.add(EVT_BUG_CREATED)
        # the role is new when the bug is
        if relationship in (REL_ASSIGNEE, REL_QA, REL_CC):
            events.add(EVT_ADDED_REMOVED)

    if any(comment.type == CMT_ATTACHMENT_CREATED for comment in comments):
        events.add(EVT_ATTACHMENT)
    elif comments:
        events.add(EVT_COMMENT)

    if dep_text:
        events.add(EVT_DEPEND_BLOCK)

    wants_mail = profile.wants_mail(events, relationship)

    # any negative event matched vetoes the mail
    if wants_mail and changer and profile.login == changer:
        wants_mail = profile.wants_mail([EVT_CHANGED_BY_ME], relationship)

    if wants_mail and bug.bug_status == WorkflowFramework().unconfirmed_state:
        wants_mail = profile.wants_mail([EVT_UNCONFIRMED], relationship)

    return wants_mail


def collect_recipients(bug, forced, diffs):
    """
    the map of the user id to the relationships to the bug
    with the bits telling whether directly or by watching

    returns the map and the users each watcher watches
    """
    recipients = defaultdict(dict)

    for voter_id in Vote.objects.filter(bug=bug).values_list("who_id", flat=True):
        recipients[voter_id][REL_VOTER] = BIT_DIRECT

    cc_ids = list(bug.cc.values_list("pk", flat=True))
    cc_ids += [Profile.objects.login_to_id(login, throw=True) for login in forced.get("cc", [])]
    for cc_id in cc_ids:
        recipients[cc_id][REL_CC] = BIT_DIRECT

    recipients[bug.reporter_id][REL_REPORTER] = BIT_DIRECT

    if settings.USEQACONTACT:
        qa_ids = [bug.qa_contact_id]
        if forced.get("qacontact"):
            qa_ids.append(Profile.objects.login_to_id(forced["qacontact"], throw=True))
        for qa_id in filter(None, qa_ids):
            recipients[qa_id][REL_QA] = BIT_DIRECT

    assignee_ids = [bug.assigned_to_id]
    if forced.get("owner"):
        assignee_ids.append(Profile.objects.login_to_id(forced["owner"], throw=True))
    for assignee_id in assignee_ids:
        recipients[assignee_id][REL_ASSIGNEE] = BIT_DIRECT

    # the people just removed from their roles
    for diff in diffs:
        if not diff["removed"]:
            continue
        if diff["description"] == "CC":
            logins = split_list(diff["removed"])
            relationship = REL_CC
        elif diff["description"] == "QAContact":
            logins = [diff["removed"]]
            relationship = REL_QA
        elif diff["description"] == "AssignedTo":
            logins = [diff["removed"]]
            relationship = REL_ASSIGNEE
        else:
            continue
        for login in logins:
            # the renamed or deleted accounts are skipped
            user_id = Profile.objects.login_to_id(login)
            if user_id:
                recipients[user_id][relationship] = BIT_DIRECT

    # watchers get the roles of the people they watch
    watching = defaultdict(list)
    for watcher_id, watched_id in Watch.objects.filter(
        watched_id__in=list(recipients)
    ).values_list("watcher_id", "watched_id"):
        for relationship, bits in list(recipients[watched_id].items()):
            if bits & BIT_DIRECT:
                recipients[watcher_id][relationship] = (
                    recipients[watcher_id].get(relationship, 0) | BIT_WATCHING
                )
        watching[watcher_id].append(watched_id)

    for login in split_list(settings.GLOBALWATCHERS):
        user_id = Profile.objects.login_to_id(login)
        if user_id:
            recipients[user_id][REL_GLOBAL_WATCHER] = BIT_DIRECT

    return recipients, watching


def send(bug, forced=None):
    """
    mail the changes of the bug since the last mail
    and everything when the bug was never mailed

    forced may carry the login of the changer and the logins
    of the owner and the qacontact and the cc list to be
    involved in these roles regardless of the bug

    returns the logins the mail was sent to and the excluded ones
    """
    forced = forced or {}
    bug = Bug.objects.select_related(
        "product", "component", "assigned_to__user", "qa_contact__user", "reporter__user"
    ).get(pk=bug.pk if isinstance(bug, Bug) else bug)

    start = bug.lastdiffed
    # the activity timestamps are truncated to the second
    end = timezone.now().replace(microsecond=0)
    is_new = start is None

    values = bug_values(bug)
    changer = forced.get("changer")
    if changer:
        values["changer"] = changer
        values["changername"] = Profile.objects.get(
            pk=Profile.objects.login_to_id(changer, throw=True)
        ).name

    diffs = collect_diffs(bug, start, end)
    parts = diff_parts(diffs)
    values["changed_fields"] = " ".join(diff["what"] for diff in diffs)

    new_depbugs = [
        int(bug_id)
        for diff in diffs
        if diff["fieldname"] == "dependson"
        for bug_id in split_list(diff["added"])
        if str(bug_id).isdigit()
    ]

    dep_text, depbugs = "", []
    # no dependency changes for the new bugs as all of them were just added
    if not is_new:
        dep_text, depbugs = dependency_text(bug, start, end, new_depbugs)
        if dep_text:
            parts.append({"text": "\n" + dep_text})

    comments = bug.comment_set.select_related("who__user").order_by("bug_when", "pk")
    if start is not None:
        comments = comments.filter(bug_when__gt=start)
    comments = list(comments.filter(bug_when__lte=end))

    recipients, watching = collect_recipients(bug, forced, diffs)

    sent = []
    excluded = []
    for user_id in sorted(recipients):
        profile = Profile.objects.select_related("user").filter(pk=user_id).first()
        # the deleted users are skipped
        if profile is None:
            continue

        relationships = {}
        if profile.can_see_bug(bug.pk):
            for relationship, bits in recipients[user_id].items():
                if wants_bug_mail(
                    profile, bug, relationship, diffs, comments, dep_text, changer, is_new
                ):
                    relationships[relationship] = bits

        mailed = False
        # no summaries of the confidential dependencies are leaked
        if (
            relationships
            and profile.email_enabled
            and all(profile.can_see_bug(dep_id) for dep_id in depbugs)
        ):
            mailed = send_mail(
                profile,
                bug,
                relationships,
                values,
                parts,
                comments,
                is_new,
                watching.get(user_id, []),
            )

        (sent if mailed else excluded).append(profile.login)

    # lastdiffed is not a change of the bug
    Bug.objects.filter(pk=bug.pk).update(lastdiffed=end)
    logger.info(f"Bugmail for bug {bug.pk} sent to {len(sent)} users")
    return {"sent": sent, "excluded": excluded}


def send_mail(profile, bug, relationships, values, parts, comments, is_new, watching):
    """
    compose the mail for the single recipient filtering out
    what the recipient is not allowed to see

    returns whether there was anything to send
    """
    difftext = ""
    last_header = ""
    for part in parts:
        if part.get("fieldname") in TIMETRACKING_FIELDS:
            if not profile.is_timetracker:
                continue
        elif part.get("isprivate") and not profile.is_insider:
            continue

        if "header" in part and part["header"] != last_header:
            last_header = part["header"]
            difftext += last_header
        difftext += part["text"]

    if not profile.is_insider:
        comments = [comment for comment in comments if not comment.isprivate]

    if not difftext and not comments and not is_new:
        return False

    diffs = difftext.strip("\n")
    if is_new:
        head = ""
        for field in FieldDefinition.objects.new_bugmail_fields():
            value = values.get(field.name)
            if not value:
                continue
            if field.name in ("estimated_time", "deadline") and not profile.is_timetracker:
                continue
            head += two_columns(f"{field.description}:", value)
        diffs = head + ("\n\n" if difftext else "") + diffs

    reasons, watch_reasons = reason_headers(relationships)
    watch_reasons += [Profile.objects.user_id_to_login(user_id) for user_id in watching]

    numbering = {
        comment_id: count
        for count, comment_id in enumerate(
            bug.comment_set.order_by("bug_when", "pk").values_list("pk", flat=True)
        )
    }
    context = {
        "isnew": is_new,
        "bugid": bug.pk,
        "url": bug_url(bug.pk),
        "diffs": diffs,
        "new_comments": [
            {
                "count": numbering.get(comment.pk, 0),
                "author": comment.who.identity,
                "when": comment.bug_when.strftime("%Y-%m-%d %H:%M:%S %Z"),
                "body": wrap_hard(comment.body_full(), COMMENT_COLS),
            }
            for comment in comments
        ],
        "reasons": [
            REASON_TEXTS[relationship]
            for relationship, bits in sorted(relationships.items())
            if bits & BIT_DIRECT
        ],
        "reasons_watch": [
            WATCH_REASON_TEXTS[relationship]
            for relationship, bits in sorted(relationships.items())
            if bits & BIT_WATCHING and relationship in WATCH_REASON_TEXTS
        ],
        "urlbase": settings.URLBASE,
    }

    headers = {
        "X-Bugzilla-Reason": " ".join(reasons),
        "X-Bugzilla-Type": "newchanged",
        "X-Bugzilla-Watch-Reason": " ".join(watch_reasons),
        "X-Bugzilla-Product": values["product"],
        "X-Bugzilla-Component": values["component"],
        "X-Bugzilla-Keywords": values["keywords"],
        "X-Bugzilla-Severity": values["bug_severity"],
        "X-Bugzilla-Who": values.get("changer", ""),
        "X-Bugzilla-Status": values["bug_status"],
        "X-Bugzilla-Priority": values["priority"],
        "X-Bugzilla-Assigned-To": values["assigned_to"],
        "X-Bugzilla-Target-Milestone": values["target_milestone"],
        "X-Bugzilla-Changed-Fields": values["changed_fields"],
        **thread_headers(bug.pk, profile.pk, is_new),
    }
    if settings.USEBUGALIASES and values["alias"]:
        headers["X-Bugzilla-Alias"] = values["alias"]

    subject = f"[Bug {bug.pk}] {'New: ' if is_new else ''}{values['short_desc']}"
    async_send_email.delay(
        subject=subject,
        to=[profile.email],
        body=render_to_string("bugmail/newchangedmail.txt", context),
        headers=headers,
    )
    return True
