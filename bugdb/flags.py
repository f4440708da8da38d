"""
flag setting and validation

the changes are validated and staged by the FlagEditor and only
written to the database by its update together with the notifications
"""
import logging

from django.db import transaction
from django.utils import timezone

from .exceptions import (
    CodeError,
    FlagRequesteeDisabled,
    FlagRequesteeUnauthorized,
    FlagStatusInvalid,
    FlagTypeInvalid,
    FlagTypeNotMultiplicable,
    FlagUpdateDenied,
    ObjectNotFound,
)
from .helpers import diff_lists
from .models import Attachment, Bug, Flag, FlagType, Profile

logger = logging.getLogger(__name__)

FLAG_STATUSES = ("X", "+", "-", "?")


def target_of(obj):
    """
    split the flag target into the bug and the attachment

    the attachment is None for the bug flags
    """
    if isinstance(obj, Attachment):
        return obj.bug, obj
    if isinstance(obj, Bug):
        return obj, None
    raise CodeError(f"Flags cannot be set on {type(obj).__name__}")


def flag_types_for(obj):
    """
    flag types available for the bug or the attachment
    with the existing flags grouped in their flags attribute

    the flags of the types no longer applicable to the bug
    product and component are left out
    """
    bug, attachment = target_of(obj)
    target_type = (
        FlagType.TargetType.ATTACHMENT if attachment else FlagType.TargetType.BUG
    )
    flag_types = list(
        FlagType.objects.applicable(target_type, bug.product_id, bug.component_id)
    )
    by_id = {flag_type.pk: flag_type for flag_type in flag_types}
    for flag_type in flag_types:
        flag_type.flags = []

    for flag in existing_flags(obj).select_related("setter__user", "requestee__user"):
        if flag.type_id in by_id:
            flag.type = by_id[flag.type_id]
            by_id[flag.type_id].flags.append(flag)

    return sorted(flag_types, key=lambda flag_type: (flag_type.sortkey, flag_type.name))


def existing_flags(obj):
    bug, attachment = target_of(obj)
    if attachment is not None:
        return Flag.objects.filter(attachment=attachment)
    return Flag.objects.filter(bug=bug, attachment__isnull=True)


def snapshot(flags):
    """textual summaries of the flags as used in the activity log"""
    summaries = []
    for flag in flags:
        summary = f"{flag.setter.nick}:{flag.type.name}{flag.status}"
        if flag.requestee_id:
            summary += f"({flag.requestee.login})"
        summaries.append(summary)
    return summaries


def update_activity(old_summaries, new_summaries):
    """
    the activity log pair (removed, added) for the flag changes
    with the setter information stripped

    returns None when nothing changed
    """
    removed, added = diff_lists(old_summaries, new_summaries)
    if not removed and not added:
        return None
    strip = lambda summary: summary.split(":", 1)[-1]  # noqa: E731
    return (
        ", ".join(strip(summary) for summary in removed),
        ", ".join(strip(summary) for summary in added),
    )


def retarget(flag, flag_types):
    """
    move the flag to an active flag type of the same name
    among the given ones returning whether it succeeded
    """
    for flag_type in flag_types:
        if flag_type.name != flag.type.name or not flag_type.is_active:
            continue
        if not flag_type.is_multiplicable and getattr(flag_type, "flags", []):
            continue
        flag.type = flag_type
        return True
    return False


def notify(flag, old_flag, obj):
    from apps.bugmail.flags import notify_flag

    notify_flag(flag, old_flag, obj)


def force_cleanup(bug):
    """
    remove or retarget the flags which are no longer valid
    after the bug was moved to another product or component

    returns the summaries of the removed attachment flags
    """
    removed = []
    flags = Flag.objects.filter(bug=bug).select_related(
        "type", "attachment", "setter__user", "requestee__user"
    )
    for flag in flags:
        target_type = flag.type.target_type
        if FlagType.objects.applicable(
            target_type, bug.product_id, bug.component_id
        ).filter(pk=flag.type_id).exists():
            continue

        obj = flag.attachment or bug
        if retarget(flag, flag_types_for(obj)):
            Flag.objects.filter(pk=flag.pk).update(type=flag.type)
            logger.info(f"Retargeted flag {flag.pk} to flag type {flag.type.pk}")
            continue

        # track the deleted attachment flags only
        if flag.attachment_id:
            removed.extend(snapshot([flag]))
        notify(None, flag, obj)
        flag.delete()
        logger.info(f"Removed invalid flag of bug {bug.pk}")
    return removed


class FlagEditor:
    """
    validates and stages the flag changes of a bug or an attachment
    made by the given user
    """

    def __init__(self, obj, user):
        self.obj = obj
        self.bug, self.attachment = target_of(obj)
        self.user = user
        self.flag_types = flag_types_for(obj)
        # separate instances so the staged changes do not leak in
        type_ids = [flag_type.pk for flag_type in self.flag_types]
        self.old_flags = {
            flag.pk: flag
            for flag in existing_flags(obj)
            .filter(type_id__in=type_ids)
            .select_related("type", "setter__user", "requestee__user")
        }
        # every flag of the target so the removed invalid flags are logged too
        self.old_summaries = snapshot(
            existing_flags(obj).select_related("type", "setter__user", "requestee__user")
        )

    def set_flag(
        self,
        id=None,
        type_id=None,
        status=None,
        requestee=None,
        setter=None,
        skip_roe=False,
    ):
        """
        stage a change of an existing flag given by the id
        or a creation of a new flag of the type given by type_id
        """
        if id:
            flag = Flag.objects.filter(pk=id).select_related("type").first()
            if flag is None:
                raise ObjectNotFound(f"There is no flag with the id {id}.")

            if (self.attachment and flag.attachment_id != self.attachment.pk) or (
                not self.attachment
                and (flag.attachment_id or flag.bug_id != self.bug.pk)
            ):
                raise FlagTypeInvalid(
                    f"The flag {id} does not belong to bug {self.bug.pk}."
                )

            flag_type = self._flag_type(flag.type_id)
            # the bug is being moved where the flag type is not valid
            if flag_type is None:
                if not retarget(flag, self.flag_types):
                    return None
                flag_type = self._flag_type(flag.type_id)
                flag_type.flags.append(flag)

            staged = next((item for item in flag_type.flags if item.pk == flag.pk), None)
            if staged is None:
                return None
            return self._validate(staged, flag_type, status, requestee, setter, skip_roe)

        if type_id:
            # the untouched flag types are not validated
            if status == "X":
                return None

            flag_type = self._flag_type(int(type_id))
            if flag_type is None:
                raise FlagTypeInvalid(
                    f"The flag type {type_id} is not valid for bug {self.bug.pk}."
                )
            if not flag_type.is_active:
                raise FlagTypeInvalid(f"The flag type {flag_type.name} is inactive.")
            if not flag_type.is_multiplicable and flag_type.flags:
                raise FlagTypeNotMultiplicable(
                    f"The flag type {flag_type.name} cannot be set multiple times."
                )
            return self._validate(None, flag_type, status, requestee, setter, skip_roe)

        raise CodeError("Either the flag id or the flag type id must be given.")

    def _flag_type(self, type_id):
        return next(
            (flag_type for flag_type in self.flag_types if flag_type.pk == type_id),
            None,
        )

    def _validate(self, flag, flag_type, status, requestee, setter, skip_roe):
        if flag is None:
            flag = Flag(
                type=flag_type,
                status="",
                bug=self.bug,
                attachment=self.attachment,
            )

        old_status = flag.status
        old_requestee_id = flag.requestee_id or 0

        self._set_status(flag, status)
        self._set_requestee(flag, requestee, skip_roe)

        # the setter is only updated when the status or the requestee change
        if flag.status != old_status or (flag.requestee_id or 0) != old_requestee_id:
            flag.setter = self._check_setter(flag, setter)

        if flag.status == "X":
            flag_type.flags = [item for item in flag_type.flags if item is not flag]
        elif flag.pk is None and flag not in flag_type.flags:
            flag_type.flags.append(flag)
        return flag

    def _set_status(self, flag, status):
        # keep the old status for the setter check
        flag._old_status = flag.status
        if status not in FLAG_STATUSES or (
            status == "?" and flag.status != "?" and not flag.type.is_requestable
        ):
            raise FlagStatusInvalid(
                f"The flag status {status} is not valid for {flag.type.name}."
            )
        flag.status = status

    def _set_requestee(self, flag, requestee, skip_roe):
        flag._old_requestee_id = flag.requestee_id or 0
        flag.requestee = self._check_requestee(flag, requestee, skip_roe)

    def _check_requestee(self, flag, requestee, skip_roe):
        # only the requests may have a requestee
        if flag.status != "?":
            return None

        old_login = flag.requestee.login if flag.requestee_id else ""
        if not requestee:
            return None
        if not isinstance(requestee, Profile):
            requestee = Profile.objects.select_related("user").get(
                pk=Profile.objects.login_to_id(requestee, throw=True)
            )
        if requestee.login == old_login:
            return requestee

        if not flag.type.is_requesteeble:
            raise FlagRequesteeDisabled(
                f"Requestees are disabled for the flag type {flag.type.name}."
            )

        problem = None
        if not requestee.can_see_bug(self.bug.pk):
            problem = f"{requestee.login} is not authorized to access bug {self.bug.pk}."
        elif self.attachment and self.attachment.isprivate and not requestee.is_insider:
            problem = (
                f"{requestee.login} is not authorized to access the private "
                f"attachment {self.attachment.pk}."
            )
        elif not requestee.can_set_flag(flag.type):
            problem = f"{requestee.login} is not allowed to set the {flag.type.name} flag."

        if problem is not None:
            if skip_roe:
                return None
            raise FlagRequesteeUnauthorized(problem)
        return requestee

    def _check_setter(self, flag, setter):
        setter = setter or self.user
        status = flag.status

        if not (
            status == flag._old_status
            or (status == "X" and setter.pk == self.user.pk)
            or (status in ("X", "?") and setter.can_request_flag(flag.type))
            or setter.can_set_flag(flag.type)
        ):
            raise FlagUpdateDenied(
                f"You are not allowed to change the {flag.type.name} flag "
                f"from '{flag._old_status}' to '{status}'."
            )

        # the requestee retargeting the request keeps the requester
        # as the setter so the requester gets the notification
        if status == "?" and flag._old_requestee_id == setter.pk and flag.setter_id:
            return flag.setter
        return setter

    def set_flags(self, changes):
        """stage a list of changes given as set_flag keyword arguments"""
        for change in changes:
            self.set_flag(**change)

    @property
    def flags(self):
        return [flag for flag_type in self.flag_types for flag in flag_type.flags]

    @transaction.atomic
    def update(self, when=None, moved=False):
        """
        write the staged changes and notify about them

        returns the activity log pair (removed, added) or None
        """
        when = when or timezone.now()
        old_summaries = list(self.old_summaries)
        remaining = dict(self.old_flags)

        for flag in self.flags:
            if flag.pk is None:
                flag.creation_date = flag.modification_date = when
                flag.save()
                notify(flag, None, self.obj)
                continue

            old_flag = remaining.pop(flag.pk, None)
            if old_flag is None:
                # retargeted from a flag type of the previous product
                flag.modification_date = when
                flag.save()
                continue
            if (
                old_flag.status,
                old_flag.requestee_id,
                old_flag.setter_id,
                old_flag.type_id,
            ) != (flag.status, flag.requestee_id, flag.setter_id, flag.type_id):
                flag.modification_date = when
                flag.save()
                notify(flag, old_flag, self.obj)

        # the flags which were cleared
        for old_flag in remaining.values():
            notify(None, old_flag, self.obj)
            old_flag.delete()

        if moved and self.attachment is None:
            old_summaries.extend(force_cleanup(self.bug))

        new_summaries = snapshot(
            existing_flags(self.obj).select_related(
                "type", "setter__user", "requestee__user"
            )
        )
        return update_activity(old_summaries, new_summaries)


def set_flag(obj, user, **params):
    """
    validate and write a single flag change right away

    returns the activity log pair (removed, added) or None
    """
    editor = FlagEditor(obj, user)
    editor.set_flag(**params)
    return editor.update()
