"""
bug creation and change

the values are validated as soon as they are set while the database
is only written by the update which also records the bug activity
"""
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.workflows.exceptions import MissingStateException
from apps.workflows.workflow import WorkflowFramework

from .constants import (
    CANCONFIRM_GROUP,
    CMT_ATTACHMENT_CREATED,
    CMT_DUPE_OF,
    CMT_HAS_DUPE,
    CMT_NORMAL,
    CMT_POPULAR_VOTES,
    CONTROLMAPMANDATORY,
    CONTROLMAPNA,
    DATE_FMT,
    EDITBUGS_GROUP,
    MAX_ALIAS_LENGTH,
    MAX_COMMENT_LENGTH,
    MAX_FREETEXT_LENGTH,
)
from .exceptions import (
    AliasError,
    AliasInUse,
    BugAccessDenied,
    CodeError,
    CommentRequired,
    CommentTooLong,
    DupeIdRequired,
    DupeLoopDetected,
    DupeOfSelf,
    FreetextTooLong,
    GroupChangeDenied,
    GroupInvalidRemoval,
    GroupInvalidRestriction,
    IllegalChange,
    IllegalDate,
    IllegalFieldValue,
    IllegalStatusTransition,
    IllegalTimeFormat,
    InvalidComment,
    MilestoneRequired,
    MissingResolution,
    NoManualMoved,
    NotInsider,
    ObjectNotFound,
    ProductAccessDenied,
    ProductEditDenied,
    RequiredFieldMissing,
    RequireSummary,
    ResolutionCantClear,
    ResolutionNotAllowed,
    StillUnresolvedBugs,
    TooManyVotes,
    UnknownKeyword,
    VotesDisabled,
)
from .flags import FlagEditor
from .helpers import clean_text, diff_lists, ensure_list, split_list, trim, validate_date
from .models import (
    Attachment,
    Bug,
    Comment,
    Component,
    Dependency,
    Duplicate,
    Group,
    Keyword,
    Milestone,
    Product,
    Profile,
    Resolution,
    Version,
    Vote,
)
from .models.bug import (
    SELECT_FIELD_CHOICES,
    count_open_dependencies,
    log_activity_entry,
    validate_dependencies,
)

logger = logging.getLogger(__name__)

TIME_RE = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)$")
MAX_TIME = Decimal("99999.99")

# bug columns tracked in the activity log
TRACKED_FIELDS = (
    "product",
    "component",
    "version",
    "target_milestone",
    "short_desc",
    "bug_status",
    "resolution",
    "priority",
    "bug_severity",
    "rep_platform",
    "op_sys",
    "bug_file_loc",
    "status_whiteboard",
    "alias",
    "assigned_to",
    "qa_contact",
    "everconfirmed",
    "reporter_accessible",
    "cclist_accessible",
    "estimated_time",
    "remaining_time",
    "deadline",
)


def display_value(bug, field):
    """the field value of the bug as shown in the activity log"""
    if field in ("product", "component"):
        return getattr(bug, field).name
    if field in ("assigned_to", "qa_contact"):
        profile = getattr(bug, field)
        return profile.login if profile is not None else ""
    value = getattr(bug, field)
    if isinstance(value, bool):
        return "1" if value else "0"
    if field in ("estimated_time", "remaining_time"):
        return f"{Decimal(value):.2f}"
    if value is None:
        return ""
    return str(value)


# validators


def validate_time(value, field):
    """
    check the time tracking value returning it as a Decimal

    only the worked time may be negative to allow the corrections
    """
    value = trim(str(value)) if value is not None else ""
    value = value or "0"
    if not TIME_RE.match(value):
        raise IllegalTimeFormat(f"The value '{value}' of {field} is not numeric.")
    time = Decimal(value)
    if time < 0 and field != "work_time":
        raise IllegalTimeFormat(f"The value '{value}' of {field} must be at least 0.")
    if time > MAX_TIME:
        raise IllegalTimeFormat(
            f"The value '{value}' of {field} must not be greater than {MAX_TIME}."
        )
    return time


def get_bug(id_or_alias):
    """
    bug by its id or alias

    only the existence is checked and not the visibility
    """
    value = trim(str(id_or_alias)) if id_or_alias is not None else ""
    if not value:
        raise ObjectNotFound("You must enter a valid bug number.")

    bug = None
    if re.fullmatch(r"\d+", value):
        bug = Bug.objects.filter(pk=int(value)).first()
    elif settings.USEBUGALIASES:
        bug = Bug.objects.filter(alias=value).first()
    if bug is None:
        raise ObjectNotFound(f"Bug {value} does not exist.")
    return bug


def check_is_visible(bug, user):
    """the user is allowed to see the bug where None is the anonymous user"""
    if user is not None:
        visible = user.can_see_bug(bug.pk)
    else:
        visible = Bug.objects.filter(pk=bug.pk).visible_to(None).exists()
    if not visible:
        raise BugAccessDenied(f"You are not authorized to access bug #{bug.pk}.")
    return bug


def get_profile(value):
    """profile given either directly or by the login name"""
    if isinstance(value, Profile):
        return value
    return Profile.objects.select_related("user").get(
        pk=Profile.objects.login_to_id(trim(value), throw=True)
    )


def get_group(value):
    """group given directly or by the id or by the name or None"""
    if isinstance(value, Group):
        return value
    if isinstance(value, int) or re.fullmatch(r"\d+", str(value)):
        return Group.objects.filter(pk=int(value)).first()
    return Group.objects.filter(name=value).first()


def check_alias(alias, bug=None):
    alias = trim(alias)
    if not settings.USEBUGALIASES or not alias:
        return None
    if len(alias) > MAX_ALIAS_LENGTH:
        raise AliasError(
            f"Bug aliases cannot be longer than {MAX_ALIAS_LENGTH} characters."
        )
    if re.fullmatch(r"\d+", alias):
        raise AliasError(f"The alias '{alias}' is numeric.")
    if re.search(r"[, ]", alias):
        raise AliasError(f"The alias '{alias}' contains a comma or a space.")
    other = Bug.objects.filter(alias=alias).first()
    if other is not None and (bug is None or other.pk != bug.pk):
        raise AliasInUse(f"The alias '{alias}' is already used by bug {other.pk}.")
    return alias


def check_short_desc(short_desc):
    short_desc = clean_text(short_desc) if short_desc else ""
    if not short_desc:
        raise RequireSummary("You must enter a summary for this bug.")
    if len(short_desc) > MAX_FREETEXT_LENGTH:
        raise FreetextTooLong(
            f"The summary must not be longer than {MAX_FREETEXT_LENGTH} characters."
        )
    return short_desc


def check_freetext(text):
    text = trim(text) or ""
    if len(text) > MAX_FREETEXT_LENGTH:
        raise FreetextTooLong(
            f"The text must not be longer than {MAX_FREETEXT_LENGTH} characters."
        )
    return text


def check_select_field(value, field):
    value = trim(value) or ""
    if value not in SELECT_FIELD_CHOICES[field].values:
        raise IllegalFieldValue(f"'{value}' is not a legal value for the {field} field.")
    return value


def check_comment(text):
    """strip the trailing whitespace and unify the line ends"""
    text = (text or "").rstrip()
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if len(text) > MAX_COMMENT_LENGTH:
        raise CommentTooLong(
            f"Comments cannot be longer than {MAX_COMMENT_LENGTH} characters."
        )
    return text


def check_commentprivacy(user, isprivate):
    if isprivate and not user.is_insider:
        raise NotInsider("Only the insiders may mark the comments as private.")
    return bool(isprivate)


def check_comment_type(comment_type):
    if comment_type not in Comment.Type.values:
        raise CodeError(f"Invalid comment type {comment_type}")
    return comment_type


def check_product(user, name):
    """product the user is allowed to enter the bugs into"""
    name = trim(name)
    if not name:
        raise RequiredFieldMissing("You must specify the product.")
    product = Product.objects.filter(name__iexact=name).first()
    if product is None:
        # nonexistent products are indistinguishable from the inaccessible ones
        raise ProductAccessDenied(
            f"You are not allowed to enter bugs into the {name} product."
        )
    user.can_enter_product(product, throw=True)
    return product


def check_component(name, product):
    name = trim(name)
    if not name:
        raise RequiredFieldMissing("You must specify the component.")
    component = Component.objects.filter(product=product, name=name).first()
    if component is None:
        raise IllegalFieldValue(
            f"There is no component named '{name}' in the {product.name} product."
        )
    return component


def check_version(name, product):
    name = trim(name)
    if not name:
        raise RequiredFieldMissing("You must specify the version.")
    if not Version.objects.filter(product=product, value=name).exists():
        raise IllegalFieldValue(
            f"There is no version named '{name}' in the {product.name} product."
        )
    return name


def check_target_milestone(name, product):
    name = trim(name) if name is not None else product.defaultmilestone
    if name == product.defaultmilestone:
        return name
    if not Milestone.objects.filter(product=product, value=name).exists():
        raise IllegalFieldValue(
            f"There is no milestone named '{name}' in the {product.name} product."
        )
    return name


def check_keywords(keywords):
    """keyword objects for the list or the comma separated text of names"""
    found = {}
    for name in split_list(keywords):
        keyword = Keyword.objects.filter(name__iexact=name).first()
        if keyword is None:
            raise UnknownKeyword(f"There is no keyword named '{name}'.")
        found[keyword.pk] = keyword
    return sorted(found.values(), key=lambda keyword: keyword.name.lower())


def check_deadline(user, value, current=None):
    if not user.is_timetracker:
        return current
    value = trim(str(value)) if value else ""
    if not value:
        return None
    if not validate_date(value):
        raise IllegalDate(f"The deadline '{value}' is not in the YYYY-MM-DD format.")
    return datetime.strptime(value, DATE_FMT).date()


def check_time(user, value, field, current=Decimal("0")):
    if not user.is_timetracker:
        return current
    return validate_time(value, field)


def check_groups(user, product, groups):
    """
    groups a new bug is placed in

    the requested groups are applied only when the user is allowed to
    and the mandatory groups of the product are applied always
    """
    controls = product.group_controls()
    group_ids = set()
    for value in ensure_list(groups):
        group = get_group(value)
        if group is None or not group.isactive:
            raise GroupInvalidRestriction(f"The group {value} is not valid.")

        control = controls.get(group.pk)
        membercontrol = control.membercontrol if control else CONTROLMAPNA
        othercontrol = control.othercontrol if control else CONTROLMAPNA
        if (membercontrol and user.in_group(group.name)) or othercontrol:
            group_ids.add(group.pk)

    group_ids.update(group.pk for group in product.groups_mandatory_for(user))
    return sorted(group_ids)


def check_strict_isolation(users, product):
    """
    with the strict isolation everybody involved in a bug
    must be able to see and edit the bugs of its product
    """
    if not settings.STRICT_ISOLATION:
        return
    blocked = sorted(
        {
            user.login
            for user in users
            if user is not None
            and not (user.can_edit_product(product.pk) and user.can_see_product(product))
        }
    )
    if blocked:
        raise ProductEditDenied(
            f"The users {', '.join(blocked)} are not allowed to edit "
            f"the bugs of the {product.name} product."
        )


def check_dependency_access(user, bug_ids, field):
    """with the strict isolation the user must be able to edit the other bugs"""
    if not settings.STRICT_ISOLATION:
        return
    for bug in Bug.objects.filter(pk__in=bug_ids):
        if not user.can_edit_product(bug.product_id):
            raise IllegalChange(
                f"You are not allowed to change the {field} of bug {bug.pk}.",
                field=field,
            )


def initial_status(user, product, status, comment):
    """
    status of a new bug along with whether it is confirmed

    only the users with editbugs or canconfirm may choose the status
    """
    workflow = WorkflowFramework()
    valid = workflow.can_change_to(None)
    if not product.allows_unconfirmed:
        valid = [name for name in valid if name != workflow.unconfirmed_state]
    if not valid:
        raise CodeError(f"There is no initial status for the {product.name} product.")

    if user.in_group(EDITBUGS_GROUP, product.pk) or user.in_group(
        CANCONFIRM_GROUP, product.pk
    ):
        if not status:
            if len(valid) == 1 or valid[0] != workflow.unconfirmed_state:
                status = valid[0]
            else:
                status = valid[1]
    elif workflow.unconfirmed_state in valid:
        status = workflow.unconfirmed_state
    else:
        status = valid[0]

    try:
        workflow.status(status)
    except MissingStateException as exception:
        raise IllegalFieldValue(f"There is no status named '{status}'.") from exception
    if status not in valid:
        raise IllegalStatusTransition(f"A new bug cannot be filed as {status}.")
    if workflow.comment_required_on_change_from(None, status) and not comment:
        raise CommentRequired(f"You have to comment on filing a bug as {status}.")
    return status, status != workflow.unconfirmed_state


# creation


@transaction.atomic
def create_bug(user, **params):
    """
    file a new bug reported by the user

    the values which the user is not allowed to choose are
    silently replaced by the defaults of the product and component
    """
    if user is None:
        raise CodeError("A bug must have a reporter.")

    for field, default in (
        ("bug_severity", settings.DEFAULTSEVERITY),
        ("priority", settings.DEFAULTPRIORITY),
        ("op_sys", settings.DEFAULTOPSYS),
        ("rep_platform", settings.DEFAULTPLATFORM),
    ):
        if params.get(field) is None:
            params[field] = default
    comment = check_comment(params.get("comment", ""))
    commentprivacy = check_commentprivacy(user, params.get("commentprivacy"))

    product = check_product(user, params.get("product"))
    component = check_component(params.get("component"), product)
    version = check_version(params.get("version"), product)
    short_desc = check_short_desc(params.get("short_desc"))
    bug_status, everconfirmed = initial_status(
        user, product, params.get("bug_status"), comment
    )
    target_milestone = check_target_milestone(params.get("target_milestone"), product)

    editbugs = user.in_group(EDITBUGS_GROUP, product.pk)
    keywords = check_keywords(params.get("keywords")) if editbugs else []
    group_ids = check_groups(user, product, params.get("groups"))

    if editbugs and params.get("assigned_to"):
        assigned_to = get_profile(params["assigned_to"])
    else:
        assigned_to = component.initialowner

    qa_contact = None
    if settings.USEQACONTACT:
        if editbugs and params.get("qa_contact"):
            qa_contact = get_profile(params["qa_contact"])
        else:
            qa_contact = component.initialqacontact

    cc = {profile.pk: profile for profile in component.initial_cc.all()}
    for login in split_list(params.get("cc")):
        profile = get_profile(login)
        cc[profile.pk] = profile

    if not settings.LETSUBMITTERCHOOSEPRIORITY:
        params["priority"] = settings.DEFAULTPRIORITY

    bug_file_loc = trim(params.get("bug_file_loc")) or ""
    if bug_file_loc == "http://":
        bug_file_loc = ""

    estimated_time = check_time(user, params.get("estimated_time"), "estimated_time")
    check_strict_isolation(list(cc.values()) + [assigned_to, qa_contact], product)

    dependson, blocked = [], []
    if editbugs and (params.get("dependson") or params.get("blocked")):
        dependson = [get_bug(value).pk for value in split_list(params.get("dependson"))]
        blocked = [get_bug(value).pk for value in split_list(params.get("blocked"))]
        check_dependency_access(user, dependson, "dependson")
        check_dependency_access(user, blocked, "blocked")
        first_level = validate_dependencies(dependson, blocked, 0)
        dependson, blocked = first_level["dependson"], first_level["blocked"]

    bug = Bug.objects.create(
        alias=check_alias(params.get("alias")),
        product=product,
        component=component,
        version=version,
        target_milestone=target_milestone,
        short_desc=short_desc,
        bug_status=bug_status,
        everconfirmed=everconfirmed,
        priority=check_select_field(params["priority"], "priority"),
        bug_severity=check_select_field(params["bug_severity"], "bug_severity"),
        rep_platform=check_select_field(params["rep_platform"], "rep_platform"),
        op_sys=check_select_field(params["op_sys"], "op_sys"),
        bug_file_loc=bug_file_loc,
        status_whiteboard=check_freetext(params.get("status_whiteboard")),
        assigned_to=assigned_to,
        qa_contact=qa_contact,
        reporter=user,
        reporter_accessible=params.get("reporter_accessible", True),
        cclist_accessible=params.get("cclist_accessible", True),
        estimated_time=estimated_time,
        remaining_time=estimated_time,
        deadline=check_deadline(user, params.get("deadline")),
    )
    when = bug.creation_ts

    bug.groups.set(group_ids)
    bug.cc.set(list(cc))
    bug.keywords.set(keywords)

    for depends_on_id in dependson:
        Dependency.objects.create(blocked=bug, dependson_id=depends_on_id)
        log_activity_entry(depends_on_id, "blocked", "", str(bug.pk), user, when)
        Bug.objects.filter(pk=depends_on_id).update(delta_ts=when)
    for blocked_id in blocked:
        Dependency.objects.create(blocked_id=blocked_id, dependson=bug)
        log_activity_entry(blocked_id, "dependson", "", str(bug.pk), user, when)
        Bug.objects.filter(pk=blocked_id).update(delta_ts=when)

    # the initial comment is always present even when empty
    Comment.objects.create(
        bug=bug, who=user, bug_when=when, thetext=comment, isprivate=commentprivacy
    )

    if params.get("flags"):
        flag_editor = FlagEditor(bug, user)
        flag_editor.set_flags(params["flags"])
        flag_editor.update(when)

    logger.info(f"Bug {bug.pk} filed by {user.login}")
    return bug


# change


class BugEditor:
    """
    stages the changes of the bug made by the user

    the setters validate the values and the permissions right away
    and the update writes them all together with the activity log
    """

    def __init__(self, bug, user):
        self.bug = bug
        self.user = user
        self.old = Bug.objects.select_related(
            "product", "component", "assigned_to__user", "qa_contact__user"
        ).get(pk=bug.pk)
        self._load_related()
        self.added_comments = []
        self.comment_isprivate = {}
        self.old_product_name = None
        self.old_component_name = None
        self._old_assigned_to_id = None
        self._old_qa_contact_id = None
        self._add_dup_cc = False
        self._dup_for_update = None
        self.flag_editor = None

    def _load_related(self):
        self.cc_ids = set(self.bug.cc.values_list("pk", flat=True))
        self.keywords = list(self.bug.keywords.all())
        self.dependson = self.bug.dependson_ids
        self.blocked = self.bug.blocked_ids
        self.group_ids = set(self.bug.groups.values_list("pk", flat=True))
        self.dup_id = self.bug.dup_id
        self._old_related = {
            "cc": set(self.cc_ids),
            "keywords": list(self.keywords),
            "dependson": list(self.dependson),
            "blocked": list(self.blocked),
            "bug_group": set(self.group_ids),
            "dup_id": self.dup_id,
        }

    # permissions

    def _changes_everconfirmed(self, field, new):
        workflow = WorkflowFramework()
        if field == "everconfirmed":
            return True
        if field == "bug_status":
            if self.bug.everconfirmed:
                return new == workflow.unconfirmed_state
            return workflow.is_open_state(new) and new != workflow.unconfirmed_state
        return False

    def check_can_change_field(self, field, old, new):
        """
        whether the user may change the field from the old value to the new one

        returns the pair (allowed, privs) where privs is the level
        of the privileges the change would require

            1 - the reporter or the assignee or an empowered user
            2 - the assignee or an empowered user
            3 - an empowered user
        """
        old = "" if old is None else old
        new = "" if new is None else new
        if old == new:
            return True, 0
        if isinstance(old, (list, tuple, set)) and isinstance(new, (list, tuple, set)):
            removed, added = diff_lists(old, new)
            if not removed and not added:
                return True, 0
        elif trim(str(old)) == trim(str(new)):
            return True, 0
        elif field in ("estimated_time", "remaining_time"):
            try:
                if Decimal(str(old)) == Decimal(str(new)):
                    return True, 0
            except InvalidOperation:
                pass

        # anybody may comment
        if field.startswith("longdesc"):
            return True, 0

        user = self.user
        product_id = self.bug.product_id
        if field in ("deadline", "estimated_time", "remaining_time"):
            if not user.is_timetracker:
                return False, 3

        if user.in_group(EDITBUGS_GROUP, product_id):
            return True, 0

        if self._changes_everconfirmed(field, new):
            return user.in_group(CANCONFIRM_GROUP, product_id), 3

        if user.pk in (self.bug.assigned_to_id, self._old_assigned_to_id):
            return True, 0
        if settings.USEQACONTACT and user.pk in (
            self.bug.qa_contact_id,
            self._old_qa_contact_id,
        ):
            return True, 0

        # the reporter or an unprivileged user from now on
        if field in ("assigned_to", "qa_contact", "target_milestone", "everconfirmed"):
            return False, 2
        if field == "priority" and not settings.LETSUBMITTERCHOOSEPRIORITY:
            return False, 2
        workflow = WorkflowFramework()
        if (
            field == "bug_status"
            and workflow.is_open_state(old)
            and workflow.is_open_state(new)
        ):
            return False, 2

        if self.bug.reporter_id == user.pk:
            return True, 0
        return False, 1

    def _check_change(self, field, old, new):
        allowed, privs = self.check_can_change_field(field, old, new)
        if not allowed:
            raise IllegalChange(
                f"You are not allowed to change the {field} field of bug {self.bug.pk}.",
                field=field,
                privs=privs,
            )

    def _set(self, field, value):
        current = getattr(self.bug, field)
        self._check_change(
            field,
            current.pk if isinstance(current, Profile) else current,
            value.pk if isinstance(value, Profile) else value,
        )
        setattr(self.bug, field, value)

    def _check_strict_isolation_for_user(self, user):
        if settings.STRICT_ISOLATION and not user.can_edit_product(self.bug.product_id):
            raise ProductEditDenied(
                f"The user {user.login} is not allowed to edit the bugs "
                f"of the {self.bug.product.name} product."
            )

    # product and component

    def set_product(self, name, component=None, version=None, target_milestone=None):
        """
        move the bug to another product

        the component and the version and the target milestone are kept
        unless given and must exist in the new product
        """
        old_product = self.bug.product
        if trim(name) and old_product.name.lower() == trim(name).lower():
            product = old_product
        else:
            product = check_product(self.user, name)

        changed = product.pk != old_product.pk
        if changed:
            self._check_change("product", old_product.name, product.name)
            self.old_product_name = self.old_product_name or old_product.name
            self.bug.product = product

        component = component or self.bug.component.name
        version = version or self.bug.version
        if target_milestone is None and (settings.USETARGETMILESTONE or not changed):
            target_milestone = self.bug.target_milestone

        self.set_component(component)
        self.set_version(version)
        if changed and not self.check_can_change_field("target_milestone", 0, 1)[0]:
            # reporters may move the bugs but not set the milestone
            self.bug.target_milestone = product.defaultmilestone
        else:
            self.set_target_milestone(target_milestone)

        if changed:
            # groups invalid in the new product are removed
            valid = set(product.groups_valid())
            for group in Group.objects.filter(pk__in=list(self.group_ids)):
                if group.pk not in valid:
                    self.remove_group(group)
            for group in product.groups_mandatory_for(self.user):
                self.add_group(group)
        return changed

    def set_component(self, name):
        old_component = self.bug.component
        component = check_component(name, self.bug.product)
        if old_component.pk != component.pk:
            self._check_change("component", old_component.name, component.name)
            self.old_component_name = self.old_component_name or old_component.name
            self.bug.component = component
            for profile in component.initial_cc.all():
                self.add_cc(profile)

    def set_version(self, version):
        self._set("version", check_version(version, self.bug.product))

    def set_target_milestone(self, target_milestone):
        self._set(
            "target_milestone", check_target_milestone(target_milestone, self.bug.product)
        )

    # people

    def set_assigned_to(self, assignee):
        if not assignee:
            raise RequiredFieldMissing("You must specify the assignee.")
        assignee = get_profile(assignee)
        self._check_strict_isolation_for_user(assignee)
        old_id = self.bug.assigned_to_id
        self._set("assigned_to", assignee)
        # the previous assignee is still allowed to finish the change
        self._old_assigned_to_id = self._old_assigned_to_id or old_id

    def reset_assigned_to(self):
        self.set_assigned_to(self.bug.component.initialowner)

    def set_qa_contact(self, qa_contact):
        qa_contact = get_profile(qa_contact) if qa_contact else None
        if qa_contact is not None:
            self._check_strict_isolation_for_user(qa_contact)
        old_id = self.bug.qa_contact_id
        self._set("qa_contact", qa_contact)
        if old_id:
            self._old_qa_contact_id = self._old_qa_contact_id or old_id

    def reset_qa_contact(self):
        self.set_qa_contact(self.bug.component.initialqacontact)

    def add_cc(self, user):
        if not user:
            return
        user = get_profile(user)
        self._check_strict_isolation_for_user(user)
        self.cc_ids.add(user.pk)

    def remove_cc(self, user):
        self.cc_ids.discard(get_profile(user).pk)

    # simple fields

    def set_alias(self, alias):
        self._set("alias", check_alias(alias, self.bug))

    def set_summary(self, short_desc):
        self._set("short_desc", check_short_desc(short_desc))

    def set_url(self, url):
        self._set("bug_file_loc", trim(url) or "")

    def set_status_whiteboard(self, whiteboard):
        self._set("status_whiteboard", check_freetext(whiteboard))

    def set_priority(self, priority):
        self._set("priority", check_select_field(priority, "priority"))

    def set_severity(self, severity):
        self._set("bug_severity", check_select_field(severity, "bug_severity"))

    def set_platform(self, platform):
        self._set("rep_platform", check_select_field(platform, "rep_platform"))

    def set_op_sys(self, op_sys):
        self._set("op_sys", check_select_field(op_sys, "op_sys"))

    def set_deadline(self, deadline):
        self._set("deadline", check_deadline(self.user, deadline, self.bug.deadline))

    def set_estimated_time(self, estimated_time):
        self._set(
            "estimated_time",
            check_time(
                self.user, estimated_time, "estimated_time", self.bug.estimated_time
            ),
        )

    def set_remaining_time(self, remaining_time):
        self._set(
            "remaining_time",
            check_time(
                self.user, remaining_time, "remaining_time", self.bug.remaining_time
            ),
        )

    def set_reporter_accessible(self, value):
        self._set("reporter_accessible", bool(value))

    def set_cclist_accessible(self, value):
        self._set("cclist_accessible", bool(value))

    # comments

    def add_comment(
        self, text, work_time=None, type=CMT_NORMAL, isprivate=None, extra_data=""
    ):
        """
        stage a new comment

        empty comments are ignored unless they are of a special type
        or they carry the worked time
        """
        text = check_comment(text)
        if work_time is not None:
            work_time = check_time(self.user, work_time, "work_time")
            if text == "" and work_time != 0:
                raise CommentRequired("You have to comment on the worked time.")
        type = check_comment_type(type)
        isprivate = check_commentprivacy(self.user, isprivate)

        if text == "" and not (type or work_time):
            return

        self._check_change("longdesc", 0, 1)
        self.added_comments.append(
            {
                "thetext": text,
                "work_time": work_time or Decimal("0"),
                "type": type,
                "isprivate": isprivate,
                "extra_data": str(extra_data or ""),
            }
        )

    def set_comment_is_private(self, comment_id, isprivate):
        if not self.user.is_insider:
            return
        comment = self.bug.comment_set.filter(pk=comment_id).first()
        if comment is None:
            raise InvalidComment(
                f"The comment {comment_id} is not a valid comment of bug {self.bug.pk}."
            )
        isprivate = bool(isprivate)
        if isprivate != comment.isprivate:
            self.comment_isprivate[comment.pk] = isprivate

    # status and resolution

    def statuses_available(self):
        """statuses the user may change the bug to including the current one"""
        workflow = WorkflowFramework()
        current = self.bug.bug_status
        statuses = [
            status
            for status in workflow.can_change_to(current)
            if self.bug.product.allows_unconfirmed
            or status != workflow.unconfirmed_state
        ]
        available = [
            status
            for status in statuses
            if self.check_can_change_field("bug_status", current, status)[0]
        ]
        # the inactive current status stays available
        if current not in available:
            available.insert(0, current)
        return available

    def _check_bug_status(self, status):
        workflow = WorkflowFramework()
        status = trim(status)
        try:
            workflow.status(status)
        except MissingStateException as exception:
            raise IllegalFieldValue(f"There is no status named '{status}'.") from exception

        old_status = self.bug.bug_status
        if status != old_status and status not in self.statuses_available():
            raise IllegalStatusTransition(
                f"You are not allowed to change the status from {old_status} to {status}."
            )
        if (
            workflow.comment_required_on_change_from(old_status, status)
            and not self.added_comments
        ):
            raise CommentRequired(
                f"You have to comment on changing the status from {old_status} to {status}."
            )

        product = self.bug.product
        if (
            status == "ASSIGNED"
            and settings.USETARGETMILESTONE
            and settings.MUSTHAVEMILESTONEONACCEPT
            # only applies with at least two milestones to choose from
            and product.milestones.count() > 1
            and self.bug.target_milestone == product.defaultmilestone
        ):
            raise MilestoneRequired(
                "You must select a target milestone to accept the bug."
            )
        return status

    def set_status(self, status, resolution=None, dupe_of=None):
        """
        change the status

        the open statuses clear the resolution while the closed
        ones require it and zero the remaining time
        """
        workflow = WorkflowFramework()
        old_status = self.bug.bug_status
        self._set("bug_status", self._check_bug_status(status))
        new_status = self.bug.bug_status

        if workflow.is_open_state(new_status):
            self._set("everconfirmed", new_status != workflow.unconfirmed_state)
            self.clear_resolution()
        else:
            self.set_resolution(resolution or self.bug.resolution, dupe_of=dupe_of)
            if new_status != old_status and self.bug.remaining_time != 0:
                self.bug.remaining_time = Decimal("0")

    def _check_resolution(self, resolution):
        workflow = WorkflowFramework()
        resolution = trim(resolution) or ""
        is_open = workflow.is_open_state(self.bug.bug_status)
        if not resolution and not is_open:
            raise MissingResolution(
                f"A {self.bug.bug_status} bug must have a resolution."
            )
        resolution = check_select_field(resolution, "resolution")
        if is_open:
            raise ResolutionNotAllowed("An open bug cannot have a resolution.")

        if settings.NORESOLVEONOPENBLOCKERS and resolution == Resolution.FIXED:
            dependencies = count_open_dependencies([self.bug.pk])
            if dependencies:
                raise StillUnresolvedBugs(
                    f"Bug {self.bug.pk} still depends on "
                    f"{dependencies[0]['dependencies']} open bugs."
                )

        if (
            settings.COMMENTONCHANGE_RESOLUTION
            and self.bug.resolution
            and resolution != self.bug.resolution
            and not self.added_comments
        ):
            raise CommentRequired("You have to comment on changing the resolution.")
        return resolution

    def set_resolution(self, resolution, dupe_of=None, moving=False):
        old_resolution = self.bug.resolution
        self._set("resolution", self._check_resolution(resolution))
        new_resolution = self.bug.resolution

        if new_resolution != old_resolution:
            # only the bugs really moved elsewhere are MOVED
            if new_resolution == Resolution.MOVED and not moving:
                raise NoManualMoved("The MOVED resolution cannot be set manually.")
            if old_resolution == Resolution.DUPLICATE:
                self.dup_id = None
            elif new_resolution == Resolution.DUPLICATE and self.bug.remaining_time != 0:
                self.bug.remaining_time = Decimal("0")

        if new_resolution == Resolution.DUPLICATE:
            if dupe_of:
                self.set_dup_id(dupe_of)
            elif not self.dup_id:
                raise DupeIdRequired(
                    "You must specify the bug this one is a duplicate of."
                )

    def clear_resolution(self):
        if not WorkflowFramework().is_open_state(self.bug.bug_status):
            raise ResolutionCantClear(
                f"The resolution of the closed bug {self.bug.pk} cannot be cleared."
            )
        self.bug.resolution = Resolution.NOVALUE
        self.dup_id = None

    def _check_dup_id(self, dupe_of):
        dupe_of_bug = get_bug(dupe_of)
        if dupe_of_bug.pk == self.bug.pk:
            raise DupeOfSelf("A bug cannot be marked as a duplicate of itself.")
        if self.dup_id == dupe_of_bug.pk:
            return dupe_of_bug

        check_is_visible(dupe_of_bug, self.user)

        # a loop not involving this bug is not the user's problem
        seen = set()
        current = dupe_of_bug.pk
        while current:
            if current == self.bug.pk:
                raise DupeLoopDetected(
                    f"Marking bug {self.bug.pk} as a duplicate of bug "
                    f"{dupe_of_bug.pk} would create a loop of duplicates."
                )
            if current in seen:
                break
            seen.add(current)
            current = (
                Duplicate.objects.filter(dupe_id=current)
                .values_list("dupe_of_id", flat=True)
                .first()
            )

        if settings.COMMENTONDUPLICATE and not self.added_comments:
            raise CommentRequired("You have to comment on marking a bug as duplicate.")

        # the reporter follows the original bug when allowed to see it
        reporter = self.bug.reporter
        if (
            reporter.can_see_bug(dupe_of_bug.pk)
            and dupe_of_bug.reporter_id != reporter.pk
        ):
            self._add_dup_cc = True
        return dupe_of_bug

    def set_dup_id(self, dupe_of):
        old = self.dup_id or 0
        dupe_of_bug = self._check_dup_id(dupe_of)
        self._check_change("dup_id", old, dupe_of_bug.pk)
        self.dup_id = dupe_of_bug.pk
        if old == self.dup_id:
            return

        # the original bug gets the comment and possibly the reporter
        other = BugEditor(dupe_of_bug, self.user)
        if self._add_dup_cc:
            other.add_cc(self.bug.reporter)
            self._add_dup_cc = False
        other.add_comment("", type=CMT_HAS_DUPE, extra_data=self.bug.pk)
        self._dup_for_update = other

        # the last normal comment becomes the duplicate comment
        normal = [comment for comment in self.added_comments if comment["type"] == CMT_NORMAL]
        if normal:
            normal[-1]["type"] = CMT_DUPE_OF
            normal[-1]["extra_data"] = str(self.dup_id)
        else:
            self.add_comment("", type=CMT_DUPE_OF, extra_data=self.dup_id)

    def mark_as_duplicate(self, dupe_of):
        self.set_status(
            WorkflowFramework().duplicate_or_move_status,
            resolution=Resolution.DUPLICATE,
            dupe_of=dupe_of,
        )

    # lists

    def set_dependencies(self, dependson, blocked):
        values = {"dependson": dependson, "blocked": blocked}
        for field in ("dependson", "blocked"):
            bug_ids = [get_bug(value).pk for value in split_list(values[field])]
            removed, added = diff_lists(getattr(self, field), bug_ids)
            modified = [int(bug_id) for bug_id in added + removed]
            if modified:
                self._check_change(field, 0, 1)
                check_dependency_access(self.user, modified, field)
            values[field] = bug_ids

        first_level = validate_dependencies(
            values["dependson"], values["blocked"], self.bug.pk
        )
        self.dependson = first_level["dependson"]
        self.blocked = first_level["blocked"]

    def modify_keywords(self, keywords, action="makeexact"):
        """
        add or delete the keywords or make the list exactly as given

        returns whether anything changed
        """
        if action not in ("add", "delete", "makeexact"):
            action = "makeexact"
        keywords = check_keywords(keywords)

        current = {keyword.pk: keyword for keyword in self.keywords}
        if action == "makeexact":
            result = keywords
            removed, added = diff_lists(
                sorted(current), sorted(keyword.pk for keyword in keywords)
            )
            changed = bool(removed or added)
        else:
            for keyword in keywords:
                if action == "add":
                    current[keyword.pk] = keyword
                else:
                    current.pop(keyword.pk, None)
            result = list(current.values())
            changed = bool(keywords)

        if changed:
            self._check_change("keywords", 0, 1)
        self.keywords = sorted(result, key=lambda keyword: keyword.name.lower())
        return changed

    def add_group(self, group):
        # the invalid groups are silently ignored
        group = get_group(group)
        if group is None or not group.isactive or not group.isbuggroup:
            return

        product = self.bug.product
        if group.pk not in product.groups_valid():
            raise GroupInvalidRestriction(
                f"The bugs of {product.name} cannot be restricted to {group.name}."
            )
        # non-members may only add groups during a product change
        if not self.user.in_group(group.name):
            control = product.group_controls()[group.pk]
            if not self.old_product_name or control.othercontrol == CONTROLMAPNA:
                raise GroupChangeDenied(
                    f"You are not allowed to add bug {self.bug.pk} to {group.name}."
                )
        self.group_ids.add(group.pk)

    def remove_group(self, group):
        group = get_group(group)
        if group is None:
            return

        product = self.bug.product
        # the groups invalid for the product may be always removed
        if group.pk in product.groups_valid():
            control = product.group_controls()[group.pk]
            if control.membercontrol == CONTROLMAPMANDATORY:
                raise GroupInvalidRemoval(
                    f"The group {group.name} is mandatory for {product.name}."
                )
            if not self.user.in_group(group.name) and (
                not self.old_product_name
                or control.othercontrol in (CONTROLMAPMANDATORY, CONTROLMAPNA)
            ):
                raise GroupChangeDenied(
                    f"You are not allowed to remove bug {self.bug.pk} from {group.name}."
                )
        self.group_ids.discard(group.pk)

    def set_flags(self, changes):
        if self.flag_editor is None:
            self.flag_editor = FlagEditor(self.bug, self.user)
        self.flag_editor.set_flags(changes)

    def set_all(self, params):
        """
        apply the changes given as the web service parameters

        the product goes first as the other values depend on it
        and the comment precedes the status which may require it
        """
        params = dict(params)
        if "product" in params:
            self.set_product(
                params.pop("product"),
                component=params.pop("component", None),
                version=params.pop("version", None),
                target_milestone=params.pop("target_milestone", None),
            )

        for field, setter in (
            ("component", self.set_component),
            ("version", self.set_version),
            ("target_milestone", self.set_target_milestone),
            ("alias", self.set_alias),
            ("short_desc", self.set_summary),
            ("bug_file_loc", self.set_url),
            ("status_whiteboard", self.set_status_whiteboard),
            ("priority", self.set_priority),
            ("bug_severity", self.set_severity),
            ("rep_platform", self.set_platform),
            ("op_sys", self.set_op_sys),
            ("deadline", self.set_deadline),
            ("estimated_time", self.set_estimated_time),
            ("remaining_time", self.set_remaining_time),
            ("reporter_accessible", self.set_reporter_accessible),
            ("cclist_accessible", self.set_cclist_accessible),
        ):
            if field in params:
                setter(params.pop(field))

        if params.pop("reset_assigned_to", False):
            self.reset_assigned_to()
        elif "assigned_to" in params:
            self.set_assigned_to(params.pop("assigned_to"))
        if params.pop("reset_qa_contact", False):
            self.reset_qa_contact()
        elif "qa_contact" in params:
            self.set_qa_contact(params.pop("qa_contact"))

        comment = params.pop("comment", None)
        if comment:
            self.add_comment(
                comment.get("body", ""),
                work_time=comment.get("work_time"),
                isprivate=comment.get("is_private"),
            )
        for comment_id, isprivate in params.pop("comment_is_private", {}).items():
            self.set_comment_is_private(int(comment_id), isprivate)

        if params.get("dupe_of"):
            self.mark_as_duplicate(params.pop("dupe_of"))
        elif "bug_status" in params:
            self.set_status(
                params.pop("bug_status"),
                resolution=params.pop("resolution", None),
                dupe_of=params.pop("dupe_of", None),
            )
        elif "resolution" in params:
            self.set_resolution(params.pop("resolution"))

        cc = params.pop("cc", {})
        for login in cc.get("add", []):
            self.add_cc(login)
        for login in cc.get("remove", []):
            self.remove_cc(login)

        keywords = params.pop("keywords", None)
        if keywords:
            for action, key in (("makeexact", "set"), ("add", "add"), ("delete", "remove")):
                if key in keywords:
                    self.modify_keywords(keywords[key], action)

        dependencies = {}
        for field in ("dependson", "blocked"):
            change = params.pop(field, None)
            if change is None:
                continue
            ids = change["set"] if "set" in change else list(getattr(self, field))
            ids = [int(get_bug(value).pk) for value in ids]
            ids += [get_bug(value).pk for value in change.get("add", [])]
            removed = {get_bug(value).pk for value in change.get("remove", [])}
            dependencies[field] = [bug_id for bug_id in ids if bug_id not in removed]
        if dependencies:
            self.set_dependencies(
                dependencies.get("dependson", self.dependson),
                dependencies.get("blocked", self.blocked),
            )

        groups = params.pop("groups", {})
        for group in groups.get("add", []):
            self.add_group(group)
        for group in groups.get("remove", []):
            self.remove_group(group)

        if params.get("flags"):
            self.set_flags(params.pop("flags"))

    # writing

    def _check_strict_isolation(self):
        """only the newly involved users are checked"""
        added_cc = self.cc_ids - self._old_related["cc"]
        users = list(Profile.objects.filter(pk__in=added_cc))
        if self.bug.assigned_to_id != self.old.assigned_to_id:
            users.append(self.bug.assigned_to)
        if self.bug.qa_contact_id and self.bug.qa_contact_id != self.old.qa_contact_id:
            users.append(self.bug.qa_contact)
        if users:
            check_strict_isolation(users, self.bug.product)

    def _update_dependencies(self, changes, when):
        bug = self.bug
        for field, other in (("dependson", "blocked"), ("blocked", "dependson")):
            removed, added = diff_lists(self._old_related[field], getattr(self, field))
            for removed_id in map(int, removed):
                Dependency.objects.filter(**{field: removed_id, other: bug}).delete()
                log_activity_entry(removed_id, other, str(bug.pk), "", self.user, when)
                # the other bug gets the mid-air protection too
                Bug.objects.filter(pk=removed_id).update(delta_ts=when)
            for added_id in map(int, added):
                Dependency.objects.create(**{f"{field}_id": added_id, other: bug})
                log_activity_entry(added_id, other, "", str(bug.pk), self.user, when)
                Bug.objects.filter(pk=added_id).update(delta_ts=when)
            if removed or added:
                changes[field] = (", ".join(removed), ", ".join(added))

    @transaction.atomic
    def update(self):
        """
        write the staged changes recording them in the activity log

        returns the changes as a dict of the field name and
        the pair of the removed and added values
        """
        bug = self.bug
        old = self.old
        self._check_strict_isolation()

        # the mid-air collisions are detected by the save
        bug.save()
        when = bug.delta_ts

        changes = {}
        for field in TRACKED_FIELDS:
            removed = display_value(old, field)
            added = display_value(bug, field)
            if removed != added:
                changes[field] = (removed, added)

        removed, added = diff_lists(sorted(self._old_related["cc"]), sorted(self.cc_ids))
        if removed or added:
            bug.cc.remove(*map(int, removed))
            bug.cc.add(*map(int, added))
            changes["cc"] = tuple(
                ", ".join(
                    sorted(
                        Profile.objects.filter(pk__in=map(int, ids)).values_list(
                            "user__username", flat=True
                        )
                    )
                )
                for ids in (removed, added)
            )

        old_keywords = [keyword.name for keyword in self._old_related["keywords"]]
        removed, added = diff_lists(
            old_keywords, [keyword.name for keyword in self.keywords]
        )
        if removed or added:
            bug.keywords.set(self.keywords)
            changes["keywords"] = (", ".join(removed), ", ".join(added))

        self._update_dependencies(changes, when)

        removed, added = diff_lists(
            sorted(self._old_related["bug_group"]), sorted(self.group_ids)
        )
        if removed or added:
            bug.groups.remove(*map(int, removed))
            bug.groups.add(*map(int, added))
            names = dict(Group.objects.values_list("pk", "name"))
            changes["bug_group"] = (
                ", ".join(names[int(group_id)] for group_id in removed),
                ", ".join(names[int(group_id)] for group_id in added),
            )

        moved = "product" in changes or "component" in changes
        if self.flag_editor is None and moved:
            self.flag_editor = FlagEditor(bug, self.user)
        if self.flag_editor is not None:
            flag_changes = self.flag_editor.update(when, moved=moved)
            if flag_changes:
                changes["flagtypes.name"] = flag_changes

        for comment in self.added_comments:
            Comment.objects.create(bug=bug, who=self.user, bug_when=when, **comment)
            if comment["work_time"]:
                log_activity_entry(
                    bug, "work_time", "", str(comment["work_time"]), self.user, when
                )

        for comment_id, isprivate in self.comment_isprivate.items():
            Comment.objects.filter(pk=comment_id).update(isprivate=isprivate)

        for field, (removed, added) in changes.items():
            log_activity_entry(bug, field, removed, added, self.user, when)

        old_dup = self._old_related["dup_id"] or 0
        new_dup = self.dup_id or 0
        if old_dup != new_dup:
            Duplicate.objects.filter(dupe=bug).delete()
            if new_dup:
                Duplicate.objects.create(dupe=bug, dupe_of_id=new_dup)
                if self._dup_for_update is not None:
                    self._dup_for_update.update()
            changes["dup_id"] = (old_dup or None, new_dup or None)

        if "product" in changes:
            remove_votes(bug, reason="This bug has been moved to a different product.")
            check_if_voted_confirmed(bug, self.user)

        # the relationship of the user to the bug may have changed
        self.user.flush_visible_bug(bug.pk)
        logger.info(f"Bug {bug.pk} updated by {self.user.login}: {', '.join(changes)}")

        self._reset()
        return changes

    def _reset(self):
        self.old = Bug.objects.select_related(
            "product", "component", "assigned_to__user", "qa_contact__user"
        ).get(pk=self.bug.pk)
        self._load_related()
        self.added_comments = []
        self.comment_isprivate = {}
        self.old_product_name = None
        self.old_component_name = None
        self._old_assigned_to_id = None
        self._old_qa_contact_id = None
        self._dup_for_update = None
        self.flag_editor = None


# attachments


@transaction.atomic
def create_attachment(
    user,
    bug,
    data,
    filename,
    description,
    mimetype="application/octet-stream",
    ispatch=False,
    isprivate=False,
    comment="",
    flags=None,
):
    """
    attach the data to the bug

    the attachment is announced by a comment and the flags
    are set on the attachment itself
    """
    check_is_visible(bug, user)
    description = trim(description)
    if not description:
        raise RequiredFieldMissing("You must enter a description for the attachment.")
    filename = trim(filename)
    if not filename:
        raise RequiredFieldMissing("You must give the attachment a file name.")
    if not data:
        raise IllegalFieldValue("The file you are trying to attach is empty.")
    isprivate = check_commentprivacy(user, isprivate)

    editor = BugEditor(bug, user)
    attachment = Attachment.objects.create(
        bug=bug,
        submitter=user,
        description=description,
        filename=filename,
        # patches are always shown as plain text
        mimetype="text/plain" if ispatch else trim(mimetype),
        ispatch=bool(ispatch),
        isprivate=isprivate,
        creation_ts=timezone.now().replace(microsecond=0),
        thedata=data,
    )
    editor.add_comment(
        comment,
        type=CMT_ATTACHMENT_CREATED,
        isprivate=isprivate,
        extra_data=attachment.pk,
    )
    editor.update()

    if flags:
        flag_editor = FlagEditor(attachment, user)
        flag_editor.set_flags(flags)
        flag_editor.update(bug.delta_ts)

    logger.info(f"Attachment {attachment.pk} added to bug {bug.pk} by {user.login}")
    return attachment


@transaction.atomic
def update_attachment_flags(user, attachment, changes):
    """
    change the flags of the attachment logging them in the bug activity

    returns the activity log pair (removed, added) or None
    """
    bug = attachment.bug
    check_is_visible(bug, user)
    if attachment.isprivate and not user.is_insider:
        raise NotInsider(f"Attachment {attachment.pk} is private.")

    when = timezone.now().replace(microsecond=0)
    flag_editor = FlagEditor(attachment, user)
    flag_editor.set_flags(changes)
    flag_changes = flag_editor.update(when)
    if flag_changes:
        removed, added = flag_changes
        log_activity_entry(
            bug, "flagtypes.name", removed, added, user, when, attachment=attachment
        )
        Bug.objects.filter(pk=bug.pk).update(delta_ts=when)
    return flag_changes


# votes


def _refresh_vote_count(bug):
    votes = Vote.objects.filter(bug=bug).aggregate(total=Sum("vote_count"))["total"]
    # the vote count does not touch the delta_ts
    Bug.objects.filter(pk=bug.pk).update(votes=votes or 0)
    bug.votes = votes or 0


@transaction.atomic
def cast_vote(user, bug, count):
    """
    set the number of the user's votes for the bug

    zero votes withdraws the vote
    """
    product = bug.product
    if not settings.USEVOTES or not product.votesperuser:
        raise VotesDisabled(f"Voting is disabled for the {product.name} product.")
    check_is_visible(bug, user)

    try:
        count = int(count)
    except (TypeError, ValueError) as exception:
        raise IllegalFieldValue(f"The vote count '{count}' is not a number.") from exception
    if count < 0:
        raise IllegalFieldValue("The vote count cannot be negative.")

    max_per_bug = min(product.votesperuser, product.maxvotesperbug)
    if count > max_per_bug:
        raise TooManyVotes(
            f"You may not use more than {max_per_bug} votes for a single bug "
            f"in the {product.name} product."
        )
    others = (
        Vote.objects.filter(who=user, bug__product=product)
        .exclude(bug=bug)
        .aggregate(total=Sum("vote_count"))["total"]
        or 0
    )
    if others + count > product.votesperuser:
        raise TooManyVotes(
            f"You may not use more than {product.votesperuser} votes "
            f"for the bugs in the {product.name} product."
        )

    if count:
        Vote.objects.update_or_create(who=user, bug=bug, defaults={"vote_count": count})
    else:
        Vote.objects.filter(who=user, bug=bug).delete()
    _refresh_vote_count(bug)
    logger.info(f"{user.login} has {count} votes for bug {bug.pk}")

    check_if_voted_confirmed(bug, user)
    return bug.votes


def remove_votes(bug, who=None, reason=""):
    """
    reduce the votes exceeding the limits of the bug product
    and notify the affected voters

    returns the notifications sent
    """
    from apps.bugmail.votes import send_votes_removed

    product = bug.product
    max_per_bug = min(product.votesperuser, product.maxvotesperbug)
    votes = Vote.objects.filter(bug=bug).select_related("who__user")
    if who is not None:
        votes = votes.filter(who=who)

    notifications = []
    for vote in votes:
        # the votes within the limits of a voting product are kept
        if product.votesperuser and vote.vote_count <= max_per_bug:
            continue

        old_count = vote.vote_count
        if max_per_bug:
            vote.vote_count = max_per_bug
            vote.save(update_fields=["vote_count"])
        else:
            vote.delete()
        notifications.append(
            {
                "voter": vote.who,
                "bug_id": bug.pk,
                "reason": reason,
                "votesremoved": old_count - max_per_bug,
                "votesold": old_count,
                "votesnew": max_per_bug,
            }
        )

    if notifications:
        _refresh_vote_count(bug)
        send_votes_removed(notifications)
    return notifications


def check_if_voted_confirmed(bug, user):
    """
    confirm the bug which got enough votes

    returns whether the bug was confirmed
    """
    product = bug.product
    if (
        bug.everconfirmed
        or not product.votestoconfirm
        or bug.votes < product.votestoconfirm
    ):
        return False

    workflow = WorkflowFramework()
    editor = BugEditor(bug, user)
    editor.add_comment("", type=CMT_POPULAR_VOTES)
    # the popular vote confirms even without the canconfirm privilege
    if bug.bug_status == workflow.unconfirmed_state:
        new_status = next(
            (
                status
                for status in workflow.can_change_to(bug.bug_status)
                if workflow.is_open_state(status) and status != workflow.unconfirmed_state
            ),
            None,
        )
        if new_status is None:
            raise CodeError("There is no open status to confirm the bug into.")
        bug.bug_status = new_status
    bug.everconfirmed = True
    editor.update()
    logger.info(f"Bug {bug.pk} confirmed by popular vote")
    return True
