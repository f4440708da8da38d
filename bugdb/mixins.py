from django.db import models
from django.utils import timezone

from .exceptions import DataInconsistencyException


class TrackingMixin(models.Model):
    """
    Mixin for tracking create/update datetimes of records.
    """

    creation_ts = models.DateTimeField(blank=True)
    delta_ts = models.DateTimeField(blank=True)

    class Meta:
        abstract = True
        indexes = [
            models.Index(fields=["-delta_ts"]),
        ]

    def save(self, *args, auto_timestamps=True, **kwargs):
        """
        save creation_ts as now on creation
        save delta_ts as now on update

        the timestamps may be set to specified
        values by setting auto_timestamps=False
        """
        # allow disabling timestamp auto-updates
        if auto_timestamps:
            # get DB counterpart of self if any
            db_self = type(self).objects.filter(pk=self.pk).first()

            # auto-set creation_ts as now on creation and never change it otherwise
            self.creation_ts = (
                timezone.now().replace(microsecond=0)
                if db_self is None
                else db_self.creation_ts
            )

            # delta_ts should never change from the DB version
            # otherwise assume that there was a conflicting parallel change
            if db_self is not None and db_self.delta_ts != self.delta_ts:
                raise DataInconsistencyException(
                    "Save operation based on an outdated model instance: "
                    f"Changed datetime in the request {self.delta_ts} "
                    f"differs from the DB {db_self.delta_ts}. "
                    "You need to refresh."
                )

            # auto-set delta_ts as now on any change
            # cut off the microseconds to allow mid-air
            # collision comparison as API works in seconds
            self.delta_ts = timezone.now().replace(microsecond=0)

        super().save(*args, **kwargs)


class TrackingMixinManager(models.Manager):
    """
    TrackingMixin companion changing the QuerySet accordingly
    """

    def create(self, **kwargs):
        """
        rewrite the default create taking the auto_timestamps
        into account as some instances are build this way

        specifically the factories would otherwise not work
        """
        auto_timestamps = kwargs.pop("auto_timestamps", None)
        obj = self.model(**kwargs)
        self._for_write = True
        # re-add the auto_timestamps argument only if it was actually present before
        new_kwargs = (
            {"auto_timestamps": auto_timestamps} if auto_timestamps is not None else {}
        )
        obj.save(force_insert=True, using=self.db, **new_kwargs)
        return obj


class ValidateMixin(models.Model):
    """
    generic validate mixin to run standard Django validations potentially
    raising ValidationError to ensure minimal necessary data quality
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        save with validate call
        """
        self.validate()
        super().save(*args, **kwargs)

    def validate(self):
        """
        validate model
        """
        self.full_clean()
