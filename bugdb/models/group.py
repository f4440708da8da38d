from django.db import models

from ..constants import (
    CONTROLMAPDEFAULT,
    CONTROLMAPMANDATORY,
    CONTROLMAPNA,
    CONTROLMAPSHOWN,
    GRANT_DIRECT,
    GRANT_REGEXP,
    GROUP_BLESS,
    GROUP_MEMBERSHIP,
    GROUP_VISIBLE,
)
from ..mixins import ValidateMixin


class GroupManager(models.Manager):
    def flatten_group_membership(self, group_ids):
        """
        expand the given group ids by all the groups
        their members inherit the membership of
        """
        known = set(group_ids)
        pending = list(known)
        while pending:
            granted = GroupGroupMap.objects.filter(
                member_id__in=pending, grant_type=GroupGroupMap.GrantType.MEMBERSHIP
            ).values_list("grantor_id", flat=True)
            pending = [group_id for group_id in set(granted) if group_id not in known]
            known.update(pending)
        return sorted(known)


class Group(ValidateMixin):
    """
    group of users

    bug groups restrict the visibility of the bugs placed in them
    while the system groups grant the privileges like editbugs
    """

    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    isbuggroup = models.BooleanField(default=True)
    isactive = models.BooleanField(default=True)
    # members with the login matching the regexp are added automatically
    userregexp = models.CharField(max_length=255, blank=True)

    objects = GroupManager()

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def members_non_inherited(self):
        """users who are members of the group directly or by regexp"""
        from .profile import Profile

        return Profile.objects.filter(
            group_maps__group=self, group_maps__isbless=False
        ).distinct()


class UserGroupMap(models.Model):
    """user membership or bless privilege for a group"""

    class GrantType(models.IntegerChoices):
        DIRECT = GRANT_DIRECT
        REGEXP = GRANT_REGEXP

    profile = models.ForeignKey(
        "Profile", on_delete=models.CASCADE, related_name="group_maps"
    )
    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name="user_maps")
    isbless = models.BooleanField(default=False)
    grant_type = models.IntegerField(choices=GrantType.choices, default=GRANT_DIRECT)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["profile", "group", "isbless", "grant_type"],
                name="unique_user_group_map",
            ),
        ]


class GroupGroupMap(models.Model):
    """the members of the member group are granted the grantor group"""

    class GrantType(models.IntegerChoices):
        MEMBERSHIP = GROUP_MEMBERSHIP
        BLESS = GROUP_BLESS
        VISIBLE = GROUP_VISIBLE

    member = models.ForeignKey(
        Group, on_delete=models.CASCADE, related_name="member_maps"
    )
    grantor = models.ForeignKey(
        Group, on_delete=models.CASCADE, related_name="grantor_maps"
    )
    grant_type = models.IntegerField(
        choices=GrantType.choices, default=GROUP_MEMBERSHIP
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["member", "grantor", "grant_type"],
                name="unique_group_group_map",
            ),
        ]


class GroupControlMap(models.Model):
    """
    relationship of a bug group to a product

    membercontrol and othercontrol define how the group may be applied
    to the bugs of the product by its members and by everybody else
    """

    class Control(models.IntegerChoices):
        NA = CONTROLMAPNA
        SHOWN = CONTROLMAPSHOWN
        DEFAULT = CONTROLMAPDEFAULT
        MANDATORY = CONTROLMAPMANDATORY

    group = models.ForeignKey(
        Group, on_delete=models.CASCADE, related_name="control_maps"
    )
    product = models.ForeignKey(
        "Product", on_delete=models.CASCADE, related_name="control_maps"
    )
    # membership is required to enter bugs into the product
    entry = models.BooleanField(default=False)
    membercontrol = models.IntegerField(choices=Control.choices, default=CONTROLMAPNA)
    othercontrol = models.IntegerField(choices=Control.choices, default=CONTROLMAPNA)
    # membership is required to edit bugs of the product
    canedit = models.BooleanField(default=False)
    # per-product privileges
    editcomponents = models.BooleanField(default=False)
    editbugs = models.BooleanField(default=False)
    canconfirm = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["group", "product"], name="unique_group_control_map"
            ),
        ]
