from django.db import models
from django.db.models import Exists, OuterRef, Q
from django.utils import timezone

from ..mixins import ValidateMixin


class FlagTypeQuerySet(models.QuerySet):
    def applicable(self, target_type, product_id, component_id):
        """
        flag types of the target type included for the product and component
        and not excluded for them where an empty product or component
        in the inclusion or exclusion stands for any
        """

        def matching(model):
            return model.objects.filter(
                Q(product_id=product_id) | Q(product__isnull=True),
                Q(component_id=component_id) | Q(component__isnull=True),
                type=OuterRef("pk"),
            )

        return (
            self.filter(target_type=target_type)
            .filter(Exists(matching(FlagInclusion)))
            .exclude(Exists(matching(FlagExclusion)))
        )


class FlagType(ValidateMixin):
    """
    kind of a flag which may be set on bugs or attachments

    grant_group members may set the flag to any status while
    request_group members may only request and clear it
    """

    class TargetType(models.TextChoices):
        BUG = "bug"
        ATTACHMENT = "attachment"

    name = models.CharField(max_length=50)
    description = models.TextField(blank=True)
    target_type = models.CharField(
        max_length=10, choices=TargetType.choices, default=TargetType.BUG
    )
    # comma or space separated addresses notified about every change
    cc_list = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    is_requestable = models.BooleanField(default=True)
    is_requesteeble = models.BooleanField(default=True)
    is_multiplicable = models.BooleanField(default=True)
    grant_group = models.ForeignKey(
        "Group",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="grant_flag_types",
    )
    request_group = models.ForeignKey(
        "Group",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="request_flag_types",
    )
    sortkey = models.IntegerField(default=0)

    objects = FlagTypeQuerySet.as_manager()

    class Meta:
        ordering = ["sortkey", "name"]

    def __str__(self):
        return self.name


class FlagInclusion(models.Model):
    type = models.ForeignKey(
        FlagType, on_delete=models.CASCADE, related_name="inclusions"
    )
    product = models.ForeignKey(
        "Product", on_delete=models.CASCADE, null=True, blank=True, related_name="+"
    )
    component = models.ForeignKey(
        "Component", on_delete=models.CASCADE, null=True, blank=True, related_name="+"
    )


class FlagExclusion(models.Model):
    type = models.ForeignKey(
        FlagType, on_delete=models.CASCADE, related_name="exclusions"
    )
    product = models.ForeignKey(
        "Product", on_delete=models.CASCADE, null=True, blank=True, related_name="+"
    )
    component = models.ForeignKey(
        "Component", on_delete=models.CASCADE, null=True, blank=True, related_name="+"
    )


class Flag(models.Model):
    """flag set on a bug or on one of its attachments"""

    class Status(models.TextChoices):
        GRANTED = "+"
        DENIED = "-"
        REQUESTED = "?"
        # only used on input to remove the flag
        CLEARED = "X"

    type = models.ForeignKey(FlagType, on_delete=models.CASCADE, related_name="flags")
    bug = models.ForeignKey("Bug", on_delete=models.CASCADE, related_name="flags")
    attachment = models.ForeignKey(
        "Attachment",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="flags",
    )
    status = models.CharField(max_length=1, choices=Status.choices)
    setter = models.ForeignKey(
        "Profile", on_delete=models.PROTECT, related_name="set_flags"
    )
    requestee = models.ForeignKey(
        "Profile",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="requested_flags",
    )
    creation_date = models.DateTimeField(default=timezone.now)
    modification_date = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["pk"]

    def __str__(self):
        return f"{self.type.name}{self.status}"

    @property
    def name(self):
        return self.type.name

    @property
    def target(self):
        return self.attachment if self.attachment_id else self.bug
