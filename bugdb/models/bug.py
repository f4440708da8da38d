from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Exists, OuterRef, Q, Sum

from ..constants import (
    CMT_ATTACHMENT_CREATED,
    CMT_DUPE_OF,
    CMT_HAS_DUPE,
    CMT_MOVED_TO,
    CMT_NORMAL,
    CMT_ATTACHMENT_UPDATED,
    CMT_POPULAR_VOTES,
    DEFAULT_MILESTONE,
    MAX_ALIAS_LENGTH,
    MAX_FREETEXT_LENGTH,
    TIMETRACKING_FIELDS,
)
from ..exceptions import DependencyLoop, DependencyLoopSingle
from ..helpers import split_list
from ..mixins import TrackingMixin, TrackingMixinManager, ValidateMixin
from .field import FieldDefinition
from .group import Group
from .product import Component, Product


class Priority(models.TextChoices):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"
    P5 = "P5"


class Severity(models.TextChoices):
    BLOCKER = "blocker"
    CRITICAL = "critical"
    MAJOR = "major"
    NORMAL = "normal"
    MINOR = "minor"
    TRIVIAL = "trivial"
    ENHANCEMENT = "enhancement"


class Platform(models.TextChoices):
    ALL = "All"
    PC = "PC"
    MACINTOSH = "Macintosh"
    OTHER = "Other"


class OpSys(models.TextChoices):
    ALL = "All"
    WINDOWS = "Windows"
    MAC_OS = "Mac OS"
    LINUX = "Linux"
    OTHER = "Other"


class Resolution(models.TextChoices):
    NOVALUE = ""
    FIXED = "FIXED"
    INVALID = "INVALID"
    WONTFIX = "WONTFIX"
    DUPLICATE = "DUPLICATE"
    WORKSFORME = "WORKSFORME"
    MOVED = "MOVED"


SELECT_FIELD_CHOICES = {
    "priority": Priority,
    "bug_severity": Severity,
    "rep_platform": Platform,
    "op_sys": OpSys,
    "resolution": Resolution,
}


class BugQuerySet(models.QuerySet):
    def visible_to(self, profile):
        """
        bugs the given profile can see

        a bug is visible when it is in no group the user is not a member of
        or when the user is involved in the bug as the reporter (if the
        reporter is allowed to see it) or the assignee or the QA contact
        or a CC member (if the CC list is allowed to see it)

        None stands for the anonymous user
        """
        group_ids = profile.group_ids if profile is not None else []
        missing_group = Exists(
            Bug.groups.through.objects.filter(bug_id=OuterRef("pk")).exclude(
                group_id__in=group_ids
            )
        )
        condition = ~missing_group
        if profile is not None:
            condition |= Q(assigned_to=profile)
            condition |= Q(reporter=profile, reporter_accessible=True)
            condition |= Q(cclist_accessible=True) & Exists(
                Bug.cc.through.objects.filter(bug_id=OuterRef("pk"), profile=profile)
            )
            if settings.USEQACONTACT:
                condition |= Q(qa_contact=profile)
        return self.filter(condition)

    def open(self):
        from apps.workflows.workflow import WorkflowFramework

        return self.filter(bug_status__in=WorkflowFramework().open_states())


class BugManager(TrackingMixinManager.from_queryset(BugQuerySet)):
    pass


class Keyword(ValidateMixin):
    name = models.CharField(max_length=64, unique=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Bug(TrackingMixin):
    """
    the bug record

    creation_ts and delta_ts come from the TrackingMixin where the
    delta_ts guards against the mid-air collisions
    """

    alias = models.CharField(
        max_length=MAX_ALIAS_LENGTH, unique=True, null=True, blank=True
    )
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="bugs")
    component = models.ForeignKey(
        Component, on_delete=models.PROTECT, related_name="bugs"
    )
    version = models.CharField(max_length=64)
    target_milestone = models.CharField(max_length=20, default=DEFAULT_MILESTONE)
    short_desc = models.CharField(max_length=MAX_FREETEXT_LENGTH)
    bug_status = models.CharField(max_length=64)
    resolution = models.CharField(
        max_length=64, choices=Resolution.choices, blank=True, default=Resolution.NOVALUE
    )
    priority = models.CharField(max_length=64, choices=Priority.choices)
    bug_severity = models.CharField(max_length=64, choices=Severity.choices)
    rep_platform = models.CharField(max_length=64, choices=Platform.choices)
    op_sys = models.CharField(max_length=64, choices=OpSys.choices)
    bug_file_loc = models.TextField(blank=True)
    status_whiteboard = models.TextField(blank=True)
    assigned_to = models.ForeignKey(
        "Profile", on_delete=models.PROTECT, related_name="assigned_bugs"
    )
    qa_contact = models.ForeignKey(
        "Profile",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="qa_bugs",
    )
    reporter = models.ForeignKey(
        "Profile", on_delete=models.PROTECT, related_name="reported_bugs"
    )
    # the last time the bug mail was sent
    lastdiffed = models.DateTimeField(null=True, blank=True)
    everconfirmed = models.BooleanField(default=False)
    reporter_accessible = models.BooleanField(default=True)
    cclist_accessible = models.BooleanField(default=True)
    estimated_time = models.DecimalField(
        max_digits=7, decimal_places=2, default=Decimal("0")
    )
    remaining_time = models.DecimalField(
        max_digits=7, decimal_places=2, default=Decimal("0")
    )
    deadline = models.DateField(null=True, blank=True)
    votes = models.IntegerField(default=0)

    keywords = models.ManyToManyField(Keyword, blank=True, related_name="bugs")
    cc = models.ManyToManyField("Profile", blank=True, related_name="cc_bugs")
    groups = models.ManyToManyField(Group, blank=True, related_name="bugs")

    objects = BugManager()

    class Meta:
        ordering = ["id"]
        indexes = TrackingMixin.Meta.indexes + [
            models.Index(fields=["bug_status"]),
        ]

    def __str__(self):
        return f"Bug {self.pk}"

    @property
    def bug_id(self):
        return self.pk

    @property
    def is_open(self):
        from apps.workflows.workflow import WorkflowFramework

        return WorkflowFramework().is_open_state(self.bug_status)

    @property
    def dependson_ids(self):
        return sorted(
            Dependency.objects.filter(blocked=self).values_list(
                "dependson_id", flat=True
            )
        )

    @property
    def blocked_ids(self):
        return sorted(
            Dependency.objects.filter(dependson=self).values_list(
                "blocked_id", flat=True
            )
        )

    @property
    def dup_id(self):
        duplicate = Duplicate.objects.filter(dupe=self).first()
        return duplicate.dupe_of_id if duplicate else None

    @property
    def duplicate_ids(self):
        return sorted(
            Duplicate.objects.filter(dupe_of=self).values_list("dupe_id", flat=True)
        )

    @property
    def keyword_names(self):
        return sorted(
            self.keywords.values_list("name", flat=True), key=lambda name: name.lower()
        )

    @property
    def cc_logins(self):
        return sorted(self.cc.values_list("user__username", flat=True))

    @property
    def group_names(self):
        return sorted(self.groups.values_list("name", flat=True))

    @property
    def actual_time(self):
        return self.comment_set.aggregate(total=Sum("work_time"))["total"] or Decimal(
            "0"
        )

    def comments(self, viewer=None, after=None, to=None):
        """
        comments of the bug in the chronological order

        the private comments are only shown to the insiders
        """
        queryset = self.comment_set.select_related("who__user").order_by(
            "bug_when", "pk"
        )
        if after is not None:
            queryset = queryset.filter(bug_when__gt=after)
        if to is not None:
            queryset = queryset.filter(bug_when__lte=to)
        if viewer is None or not viewer.is_insider:
            queryset = queryset.filter(isprivate=False)
        return queryset

    def statuses_available(self):
        """statuses the bug may be changed to including the current one"""
        from apps.workflows.workflow import WorkflowFramework

        workflow = WorkflowFramework()
        statuses = [self.bug_status] + [
            status
            for status in workflow.can_change_to(self.bug_status)
            if status != self.bug_status
        ]
        if not self.product.allows_unconfirmed:
            statuses = [
                status for status in statuses if status != workflow.unconfirmed_state
            ]
        return statuses

    def editable_bug_fields(self):
        """fields which may be directly set on the bug"""
        fields = [
            "alias",
            "bug_file_loc",
            "bug_severity",
            "bug_status",
            "op_sys",
            "priority",
            "rep_platform",
            "short_desc",
            "status_whiteboard",
            "target_milestone",
            "version",
            "assigned_to",
            "qa_contact",
            "estimated_time",
            "remaining_time",
            "deadline",
            "reporter_accessible",
            "cclist_accessible",
            "product",
            "component",
            "resolution",
        ]
        if not settings.USEQACONTACT:
            fields.remove("qa_contact")
        if not settings.USEBUGALIASES:
            fields.remove("alias")
        return fields


class Dependency(models.Model):
    """the blocked bug depends on the dependson bug"""

    blocked = models.ForeignKey(
        Bug, on_delete=models.CASCADE, related_name="dependency_rows"
    )
    dependson = models.ForeignKey(
        Bug, on_delete=models.CASCADE, related_name="blocking_rows"
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["blocked", "dependson"], name="unique_dependency"
            ),
        ]


class Duplicate(models.Model):
    dupe = models.OneToOneField(
        Bug, on_delete=models.CASCADE, related_name="duplicate_row"
    )
    dupe_of = models.ForeignKey(
        Bug, on_delete=models.CASCADE, related_name="duplicate_rows"
    )


class Vote(models.Model):
    who = models.ForeignKey("Profile", on_delete=models.CASCADE, related_name="votes")
    bug = models.ForeignKey(Bug, on_delete=models.CASCADE, related_name="vote_rows")
    vote_count = models.PositiveIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["who", "bug"], name="unique_vote"),
        ]


class Attachment(models.Model):
    bug = models.ForeignKey(Bug, on_delete=models.CASCADE, related_name="attachments")
    submitter = models.ForeignKey(
        "Profile", on_delete=models.PROTECT, related_name="attachments"
    )
    description = models.TextField()
    filename = models.CharField(max_length=255)
    mimetype = models.CharField(max_length=255)
    ispatch = models.BooleanField(default=False)
    isobsolete = models.BooleanField(default=False)
    isprivate = models.BooleanField(default=False)
    creation_ts = models.DateTimeField()
    thedata = models.BinaryField(blank=True)

    class Meta:
        ordering = ["pk"]

    def __str__(self):
        return f"Attachment #{self.pk}"


class Comment(models.Model):
    class Type(models.IntegerChoices):
        NORMAL = CMT_NORMAL
        DUPE_OF = CMT_DUPE_OF
        HAS_DUPE = CMT_HAS_DUPE
        POPULAR_VOTES = CMT_POPULAR_VOTES
        MOVED_TO = CMT_MOVED_TO
        ATTACHMENT_CREATED = CMT_ATTACHMENT_CREATED
        ATTACHMENT_UPDATED = CMT_ATTACHMENT_UPDATED

    bug = models.ForeignKey(Bug, on_delete=models.CASCADE)
    who = models.ForeignKey("Profile", on_delete=models.PROTECT, related_name="+")
    bug_when = models.DateTimeField()
    work_time = models.DecimalField(max_digits=7, decimal_places=2, default=Decimal("0"))
    thetext = models.TextField(blank=True)
    isprivate = models.BooleanField(default=False)
    type = models.IntegerField(choices=Type.choices, default=CMT_NORMAL)
    # bug id or attachment id the comment refers to
    extra_data = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["bug_when", "pk"]

    def body_full(self):
        """comment text with the generated part for the special types"""
        if self.type == CMT_DUPE_OF:
            prefix = f"*** This bug has been marked as a duplicate of bug {self.extra_data} ***"
        elif self.type == CMT_HAS_DUPE:
            return f"*** Bug {self.extra_data} has been marked as a duplicate of this bug. ***"
        elif self.type == CMT_POPULAR_VOTES:
            return "*** This bug has been confirmed by popular vote. ***"
        elif self.type == CMT_MOVED_TO:
            prefix = f"Bug moved to {self.extra_data}."
        elif self.type == CMT_ATTACHMENT_CREATED:
            prefix = f"Created an attachment (id={self.extra_data})"
        elif self.type == CMT_ATTACHMENT_UPDATED:
            prefix = f"Comment on attachment {self.extra_data}"
        else:
            return self.thetext
        return f"{prefix}\n\n{self.thetext}" if self.thetext else prefix


class BugActivity(models.Model):
    bug = models.ForeignKey(Bug, on_delete=models.CASCADE, related_name="activity")
    attachment = models.ForeignKey(
        Attachment,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="activity",
    )
    who = models.ForeignKey("Profile", on_delete=models.PROTECT, related_name="+")
    bug_when = models.DateTimeField()
    field = models.ForeignKey(FieldDefinition, on_delete=models.PROTECT)
    removed = models.TextField(blank=True)
    added = models.TextField(blank=True)

    class Meta:
        ordering = ["bug_when", "pk"]
        verbose_name_plural = "bug activity"


def _split_activity_value(value, limit=MAX_FREETEXT_LENGTH):
    """split a long comma separated value at the commas"""
    chunks = []
    while len(value) > limit:
        position = value.rfind(",", 0, limit)
        if position <= 0:
            position = limit
        chunks.append(value[:position])
        value = value[position:].lstrip(", ")
    chunks.append(value)
    return chunks


def log_activity_entry(bug, field_name, removed, added, who, when, attachment=None):
    """
    record a field change in the bug activity

    the long lists are split into several rows
    """
    field = FieldDefinition.objects.get_by_name(field_name)
    removed_chunks = _split_activity_value(removed or "")
    added_chunks = _split_activity_value(added or "")
    length = max(len(removed_chunks), len(added_chunks))
    removed_chunks += [""] * (length - len(removed_chunks))
    added_chunks += [""] * (length - len(added_chunks))
    BugActivity.objects.bulk_create(
        BugActivity(
            bug_id=bug if isinstance(bug, int) else bug.pk,
            attachment=attachment,
            who=who,
            bug_when=when,
            field=field,
            removed=removed_chunk,
            added=added_chunk,
        )
        for removed_chunk, added_chunk in zip(removed_chunks, added_chunks)
    )


def bug_activity(bug, viewer=None, since=None):
    """
    the bug history grouped into the operations done
    by a single user at a single moment

    the time tracking changes are shown to the timetrackers only
    and the changes of the private attachments to the insiders only
    """
    queryset = bug.activity.select_related("field", "who__user").order_by(
        "bug_when", "pk"
    )
    if since is not None:
        queryset = queryset.filter(bug_when__gt=since)
    if viewer is None or not viewer.is_insider:
        queryset = queryset.exclude(attachment__isprivate=True)
    if viewer is None or not viewer.is_timetracker:
        queryset = queryset.exclude(field__name__in=TIMETRACKING_FIELDS)

    operations = []
    for entry in queryset:
        if (
            not operations
            or operations[-1]["who"] != entry.who.login
            or operations[-1]["when"] != entry.bug_when
        ):
            operations.append({"who": entry.who.login, "when": entry.bug_when, "changes": []})
        operations[-1]["changes"].append(
            {
                "fieldname": entry.field.name,
                "attachid": entry.attachment_id,
                "removed": entry.removed,
                "added": entry.added,
            }
        )
    return operations


def validate_dependencies(dependson=None, blocked=None, bug_id=0):
    """
    make sure the new dependencies do not form a loop

    returns the first level dependencies as a dict with the
    dependson and blocked keys
    """
    if dependson is None and blocked is None:
        return {}

    fields = {"dependson": dependson, "blocked": blocked}
    first_level = {}
    trees = {}
    for me, target in (("blocked", "dependson"), ("dependson", "blocked")):
        seen = set()
        tree = []
        for other_id in split_list(fields[target]):
            other_id = int(other_id)
            if other_id == bug_id:
                raise DependencyLoopSingle("You can't make a bug block itself or depend on itself.")
            if other_id not in seen:
                tree.append(other_id)
                seen.add(other_id)
        first_level[target] = list(tree)

        stack = list(tree)
        while stack:
            current = stack.pop(0)
            # ignore the current dependencies involving this bug
            # as they are going to be replaced by the new ones
            for other_id in Dependency.objects.filter(**{me: current}).values_list(
                f"{target}_id", flat=True
            ):
                if other_id != bug_id and other_id not in seen:
                    tree.append(other_id)
                    stack.append(other_id)
                    seen.add(other_id)
        trees[target] = tree

    intersection = sorted(set(trees["dependson"]) & set(trees["blocked"]))
    if intersection:
        raise DependencyLoop(
            "Dependency loop detected! The following bugs would be both blocking "
            f"and depending on this bug: {', '.join(map(str, intersection))}"
        )
    return first_level


def count_open_dependencies(bug_ids):
    """number of the open bugs each of the given bugs depends on"""
    from apps.workflows.workflow import WorkflowFramework

    rows = (
        Dependency.objects.filter(
            blocked_id__in=bug_ids,
            dependson__bug_status__in=WorkflowFramework().open_states(),
        )
        .values("blocked_id")
        .annotate(dependencies=models.Count("dependson_id"))
        .order_by("blocked_id")
    )
    return [
        {"bug_id": row["blocked_id"], "dependencies": row["dependencies"]}
        for row in rows
    ]
