from django.db import models

from bugdb.models import Group, Profile


class WhineEvent(models.Model):
    """
    scheduled report of the bugs matching the query

    the query holds the bug filter parameters
    """

    owner = models.ForeignKey(
        Profile, on_delete=models.CASCADE, related_name="whine_events"
    )
    subject = models.CharField(max_length=128, blank=True)
    body = models.TextField(blank=True)
    query = models.JSONField(default=dict, blank=True)
    # whether the report is sent even when no bug matches
    mailifnobugs = models.BooleanField(default=False)

    def __str__(self):
        return self.subject or f"Whine event {self.pk}"


class WhineSchedule(models.Model):
    """
    when and to whom the event is mailed

    run_day is All or MON-FRI or a weekday name like Mon
    or a day of the month or last for the last day of the month

    run_time is an hour 0 to 23 or a period in minutes like 15m
    """

    class MailtoType(models.IntegerChoices):
        USER = 0
        GROUP = 1

    event = models.ForeignKey(
        WhineEvent, on_delete=models.CASCADE, related_name="schedules"
    )
    run_day = models.CharField(max_length=32, default="All")
    run_time = models.CharField(max_length=32, default="0")
    run_next = models.DateTimeField(null=True, blank=True)
    mailto_type = models.IntegerField(
        choices=MailtoType.choices, default=MailtoType.USER
    )
    mailto_user = models.ForeignKey(
        Profile,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="whine_schedules",
    )
    mailto_group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="whine_schedules",
    )

    class Meta:
        ordering = ["pk"]

    @property
    def mailto_is_group(self):
        return self.mailto_type == self.MailtoType.GROUP

    @property
    def mailto(self):
        """the user or the group the event is mailed to"""
        return self.mailto_group if self.mailto_is_group else self.mailto_user

    def mailto_users(self):
        """
        the users to mail

        the direct members of an active group or the single user
        """
        if self.mailto_is_group:
            if self.mailto_group is None or not self.mailto_group.isactive:
                return []
            return list(self.mailto_group.members_non_inherited().select_related("user"))
        return [self.mailto_user] if self.mailto_user is not None else []
