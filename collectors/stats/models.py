from django.db import models

from bugdb.models import Profile


class Series(models.Model):
    """
    a named bug query counted periodically

    the frequency is in days and zero disables the collection
    """

    name = models.CharField(max_length=64)
    category = models.CharField(max_length=64)
    subcategory = models.CharField(max_length=64)
    creator = models.ForeignKey(
        Profile, null=True, on_delete=models.SET_NULL, related_name="series"
    )
    frequency = models.PositiveIntegerField(default=1)
    query = models.JSONField(default=dict, blank=True)
    is_public = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["category", "subcategory", "name"],
                name="unique_series_name",
            ),
        ]
        verbose_name_plural = "series"

    def __str__(self):
        return f"{self.category}/{self.subcategory}/{self.name}"


class SeriesData(models.Model):
    series = models.ForeignKey(Series, on_delete=models.CASCADE, related_name="data")
    series_date = models.DateField()
    series_value = models.IntegerField()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["series", "series_date"], name="unique_series_date"
            ),
        ]
        ordering = ["series_date"]
