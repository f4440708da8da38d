from django.db import models

from ..constants import CONTROLMAPMANDATORY, CONTROLMAPNA, DEFAULT_MILESTONE
from ..mixins import ValidateMixin


class Product(ValidateMixin):
    """product the bugs are filed against"""

    name = models.CharField(max_length=64, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    allows_unconfirmed = models.BooleanField(default=True)
    # voting limits, zero disables the voting
    votesperuser = models.PositiveIntegerField(default=0)
    maxvotesperbug = models.PositiveIntegerField(default=10000)
    votestoconfirm = models.PositiveIntegerField(default=0)
    defaultmilestone = models.CharField(max_length=20, default=DEFAULT_MILESTONE)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def group_controls(self):
        """
        group control maps of the active bug groups
        of the product keyed by the group id
        """
        return {
            control.group_id: control
            for control in self.control_maps.select_related("group").filter(
                group__isbuggroup=True, group__isactive=True
            )
        }

    def groups_valid(self):
        """ids of the groups which may restrict the bugs of the product"""
        return [
            group_id
            for group_id, control in self.group_controls().items()
            if control.membercontrol != CONTROLMAPNA
            or control.othercontrol != CONTROLMAPNA
        ]

    def groups_mandatory_for(self, profile):
        """groups every bug of the product filed or moved by the user must be in"""
        return [
            control.group
            for group_id, control in self.group_controls().items()
            if control.membercontrol == CONTROLMAPMANDATORY
            or (
                control.othercontrol == CONTROLMAPMANDATORY
                and group_id not in profile.group_ids
            )
        ]

    def user_has_access(self, profile):
        """the user is a member of every group required to enter bugs"""
        return not (
            self.control_maps.filter(entry=True)
            .exclude(group_id__in=profile.group_ids)
            .exists()
        )

    def milestone_values(self):
        return list(self.milestones.values_list("value", flat=True))

    def version_values(self):
        return list(self.versions.values_list("value", flat=True))


class Component(ValidateMixin):
    """product component with the default people for its bugs"""

    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="components"
    )
    name = models.CharField(max_length=64)
    description = models.TextField(blank=True)
    initialowner = models.ForeignKey(
        "Profile", on_delete=models.PROTECT, related_name="owned_components"
    )
    initialqacontact = models.ForeignKey(
        "Profile",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="qa_components",
    )
    initial_cc = models.ManyToManyField(
        "Profile", blank=True, related_name="cc_components"
    )

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "name"], name="unique_component_name"
            ),
        ]

    def __str__(self):
        return self.name


class Version(ValidateMixin):
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="versions"
    )
    value = models.CharField(max_length=64)

    class Meta:
        ordering = ["value"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "value"], name="unique_version_value"
            ),
        ]

    def __str__(self):
        return self.value


class Milestone(ValidateMixin):
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="milestones"
    )
    value = models.CharField(max_length=20)
    sortkey = models.IntegerField(default=0)

    class Meta:
        ordering = ["sortkey", "value"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "value"], name="unique_milestone_value"
            ),
        ]

    def __str__(self):
        return self.value
