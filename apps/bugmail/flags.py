"""
flag change notifications
"""
import logging

from bugdb.constants import EVT_FLAG_REQUESTED, EVT_REQUESTED_FLAG
from bugdb.flags import target_of
from bugdb.models import Profile

from .core import bug_url
from .tasks import send_flag_mail

logger = logging.getLogger(__name__)

SUBJECT_PREFIXES = {
    "?": "Requested",
    "+": "Granted",
    "-": "Denied",
    "X": "Canceled",
}


def flag_action(flag, old_flag):
    """the description of what happened to the flag"""
    name = (flag or old_flag).name
    status = flag.status if flag is not None else "X"
    requester = ""
    if old_flag is not None and old_flag.status == "?":
        requester = old_flag.setter.login

    if status == "?":
        requestee = flag.requestee.login if flag.requestee_id else "the wider audience"
        return f"asked {requestee} for {name}"
    if status == "X":
        if requester:
            return f"canceled {requester}'s request for {name}"
        return f"canceled {name}"
    verb = "granted" if status == "+" else "denied"
    if requester:
        return f"{verb} {requester}'s request for {name}"
    return f"{verb} {name}"


def notify_flag(flag, old_flag, obj):
    """
    notify about the flag change

    the requestee learns about the new request and the requester
    about the request being answered or canceled while the flag
    type CC list learns about everything it is allowed to see

    flag is None when the flag was removed
    """
    bug, attachment = target_of(obj)

    addressee = None
    if (
        flag is not None
        and flag.requestee_id
        and (old_flag is None or (old_flag.requestee_id or 0) != flag.requestee_id)
    ):
        if flag.requestee.wants_mail([EVT_FLAG_REQUESTED]):
            addressee = flag.requestee
    elif (
        old_flag is not None
        and old_flag.status == "?"
        and (flag is None or flag.status != "?")
    ):
        if old_flag.setter.wants_mail([EVT_REQUESTED_FLAG]):
            addressee = old_flag.setter

    cc_list = (flag or old_flag).type.cc_list
    if addressee is None and not cc_list:
        return []

    # the restricted bugs are only mailed to the people allowed to see them
    restricted = bug.groups.exists()
    private_attachment = attachment is not None and attachment.isprivate

    recipients = {}
    for address in [item for item in cc_list.replace(",", " ").split() if item]:
        user_id = Profile.objects.login_to_id(address)
        cc_user = Profile.objects.select_related("user").get(pk=user_id) if user_id else None
        if restricted and (cc_user is None or not cc_user.can_see_bug(bug.pk)):
            continue
        if private_attachment and (cc_user is None or not cc_user.is_insider):
            continue
        recipients[cc_user.email if cc_user else address] = cc_user

    if addressee is not None and addressee.email_enabled:
        recipients[addressee.email] = addressee

    setter = flag.setter if flag is not None else old_flag.setter
    status = flag.status if flag is not None else "X"
    context = {
        "setter": setter.identity,
        "action": flag_action(flag, old_flag),
        "bug_id": bug.pk,
        "summary": bug.short_desc,
        "url": bug_url(bug.pk),
        "attachment_id": attachment.pk if attachment is not None else None,
        "attachment_description": attachment.description if attachment is not None else "",
        "attachment_url": (
            f"{bug_url(bug.pk)}#attach_{attachment.pk}" if attachment is not None else ""
        ),
    }
    subject = f"{SUBJECT_PREFIXES[status]}: [Bug {bug.pk}] {bug.short_desc}"
    if attachment is not None:
        subject += f" : [Attachment {attachment.pk}] {attachment.description}"

    for address, user in sorted(recipients.items()):
        send_flag_mail.delay(
            to=address,
            subject=subject,
            context=context,
            bug_id=bug.pk,
            user_id=user.pk if user is not None else 0,
        )
    logger.info(f"Flag {(flag or old_flag).name} notification sent to {len(recipients)}")
    return sorted(recipients)
