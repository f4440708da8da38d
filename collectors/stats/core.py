"""
Daily bug statistics

    the per-product files count the bugs by status and resolution, one
    row a day, and the series count the bugs matching the saved queries
"""
import logging
import os
from collections import defaultdict
from datetime import date, timedelta

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from apps.workflows.workflow import WorkflowFramework
from bugdb.filters import BugFilter
from bugdb.models import Bug, BugActivity, Product
from bugdb.models.bug import Resolution

from .constants import ALL_PRODUCTS, STATS_DATE_FMT, STATS_HEADER
from .models import Series, SeriesData

logger = logging.getLogger(__name__)

EPOCH = date(1970, 1, 1)


def legal_values(field):
    """
    the current values of the field followed by the values which
    appear only in the history as they may have been removed or renamed
    """
    if field == "bug_status":
        values = [status.name for status in WorkflowFramework().statuses]
    else:
        values = [value for value in Resolution.values if value]

    history = BugActivity.objects.filter(field__name=field)
    old_values = set(history.values_list("added", flat=True))
    old_values |= set(history.values_list("removed", flat=True))
    return values + sorted(value for value in old_values - set(values) if value)


def stats_columns():
    return legal_values("bug_status"), legal_values("resolution")


def stats_file(datadir, product):
    # products with a slash would escape the directory
    return os.path.join(datadir, product.replace("/", "-"))


def stats_header(fields, product):
    return STATS_HEADER.format(
        fields="|".join(fields), product=product, created=timezone.now().ctime()
    )


def get_old_data(path, fields):
    """
    the rows of an existing file whose columns differ from the given ones

    returns whether the file has to be recreated and its rows as
    dicts keyed by the old columns
    """
    columns = []
    recreate = False
    rows = []
    with open(path) as stats:
        for line in stats:
            line = line.rstrip("\n")
            if not line:
                continue
            if line.startswith("# field"):
                columns = line.split(":", 1)[1].strip().split("|")
                recreate = [columns[0]] + fields[1:] != columns
                if not recreate:
                    break
            if not recreate or line.startswith("#"):
                continue
            rows.append(dict(zip(columns, line.split("|"))))
    return recreate, rows


def product_bugs(product):
    if product == ALL_PRODUCTS:
        return Bug.objects.all()
    return Bug.objects.filter(product__name=product)


def count_by(bugs, field):
    return {
        row[field]: row["count"]
        for row in bugs.values(field).annotate(count=Count("pk")).order_by()
    }


def collect_product_stats(datadir, product, statuses, resolutions, today=None):
    """
    append the today counts of the product to its statistics file

    the file is recreated keeping the old rows when its columns
    no longer match the statuses and resolutions
    """
    today = today or timezone.now().date()
    path = stats_file(datadir, product)
    fields = ["DATE", *statuses, *resolutions]

    exists = os.path.isfile(path)
    recreate, old_rows = get_old_data(path, fields) if exists else (False, [])

    bugs = product_bugs(product)
    by_status = count_by(bugs, "bug_status")
    by_resolution = count_by(bugs, "resolution")
    row = [today.strftime(STATS_DATE_FMT)]
    row += [str(by_status.get(status, 0)) for status in statuses]
    row += [str(by_resolution.get(resolution, 0)) for resolution in resolutions]

    with open(path, "w" if recreate else "a") as stats:
        if not exists or recreate:
            stats.write(stats_header(fields, product))
        # a missing column is not the same as no bugs
        for old_row in old_rows:
            stats.write("|".join(old_row.get(field) or "" for field in fields) + "\n")
        stats.write("|".join(row) + "\n")
    os.chmod(path, 0o644)
    return row


def collect_stats(datadir, today=None):
    """collect the statistics of every product and of all of them"""
    os.makedirs(datadir, exist_ok=True)
    statuses, resolutions = stats_columns()
    products = [ALL_PRODUCTS, *Product.objects.values_list("name", flat=True)]
    for product in products:
        collect_product_stats(datadir, product, statuses, resolutions, today)
    logger.info(f"Collected the statistics of {len(products)} products")
    return products


def removed_values(field):
    """
    the history of the field per bug as a list of (date, removed value)
    ordered from the oldest change
    """
    removed = defaultdict(list)
    history = (
        BugActivity.objects.filter(field__name=field)
        .order_by("bug_when", "pk")
        .values_list("bug_id", "bug_when", "removed")
    )
    for bug_id, when, value in history:
        removed[bug_id].append((timezone.localdate(when), value))
    return removed


def value_on(changes, current, day):
    """
    the value at the start of the day

    which is the value removed by the first change made that day or later
    """
    for when, removed in changes:
        if when >= day:
            return removed
    return current


def regenerate_product_stats(datadir, product, statuses, resolutions, today=None):
    """
    rebuild the whole statistics file of the product from the history

    the row of each day counts the bugs created before the previous day
    """
    today = today or timezone.now().date()
    bugs = list(
        product_bugs(product)
        .order_by("creation_ts")
        .values_list("pk", "creation_ts", "bug_status", "resolution")
    )
    if not bugs:
        return None

    removed = {
        "bug_status": removed_values("bug_status"),
        "resolution": removed_values("resolution"),
    }
    path = stats_file(datadir, product)
    fields = ["DATE", *statuses, *resolutions]
    start = timezone.localdate(bugs[0][1])

    with open(path, "w") as stats:
        stats.write(stats_header(fields, product))
        day = start + timedelta(days=1)
        while day <= today:
            counts = dict.fromkeys(fields[1:], 0)
            for bug_id, creation_ts, bug_status, resolution in bugs:
                if timezone.localdate(creation_ts) >= day - timedelta(days=1):
                    break
                status = value_on(removed["bug_status"][bug_id], bug_status, day)
                if status in counts:
                    counts[status] += 1
                resolution = value_on(removed["resolution"][bug_id], resolution, day)
                # the empty resolution is not a column
                if resolution and resolution in counts:
                    counts[resolution] += 1
            values = [str(counts[field]) for field in fields[1:]]
            stats.write("|".join([day.strftime(STATS_DATE_FMT), *values]) + "\n")
            day += timedelta(days=1)
    os.chmod(path, 0o640)
    logger.info(f"Regenerated the statistics of {product}")
    return path


def regenerate_stats(datadir, today=None):
    """rebuild the statistics files of every product"""
    os.makedirs(datadir, exist_ok=True)
    statuses, resolutions = stats_columns()
    products = [ALL_PRODUCTS, *Product.objects.values_list("name", flat=True)]
    return [
        regenerate_product_stats(datadir, product, statuses, resolutions, today)
        for product in products
    ]


def due_series(today):
    """
    the series to be collected on the given day

    the series of the same frequency are spread over the days by their ids
    """
    days_since_epoch = (today - EPOCH).days
    return [
        series
        for series in Series.objects.exclude(frequency=0).select_related("creator")
        if (days_since_epoch + series.pk) % series.frequency == 0
    ]


def series_count(series):
    """
    the number of the bugs matching the series query

    the query runs with the permissions of the series creator
    and None is returned when the query is no longer valid
    """
    filterset = BugFilter(
        series.query, queryset=Bug.objects.visible_to(series.creator)
    )
    if not filterset.is_valid():
        logger.warning(f"Series {series} has an invalid query: {filterset.errors}")
        return None
    return filterset.qs.count()


def collect_series_data(today=None):
    """
    count the due series storing the values of the day

    running it twice the same day replaces the values
    returns the collected values keyed by the series ids
    """
    today = today or timezone.now().date()
    collected = {}
    for series in due_series(today):
        count = series_count(series)
        if count is None:
            continue
        with transaction.atomic():
            SeriesData.objects.filter(series=series, series_date=today).delete()
            SeriesData.objects.create(
                series=series, series_date=today, series_value=count
            )
        collected[series.pk] = count
    return collected
