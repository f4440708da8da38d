import os
from datetime import date

import pytest
from freezegun import freeze_time

from bugdb.models import BugActivity, FieldDefinition
from bugdb.tests.factories import (
    BugFactory,
    GroupFactory,
    ProductFactory,
    ProfileFactory,
)
from collectors.stats import tasks
from collectors.stats.constants import ALL_PRODUCTS
from collectors.stats.core import (
    collect_product_stats,
    collect_series_data,
    collect_stats,
    due_series,
    legal_values,
    regenerate_stats,
    stats_columns,
    stats_file,
    value_on,
)
from collectors.stats.models import Series, SeriesData

pytestmark = pytest.mark.unit

STATUSES = ["UNCONFIRMED", "NEW", "ASSIGNED", "REOPENED", "RESOLVED", "VERIFIED", "CLOSED"]
RESOLUTIONS = ["FIXED", "INVALID", "WONTFIX", "DUPLICATE", "WORKSFORME", "MOVED"]


def data_rows(path):
    with open(path) as stats:
        return [line.rstrip("\n") for line in stats if not line.startswith("#")]


def fields_line(path):
    with open(path) as stats:
        return next(line for line in stats if line.startswith("# fields:"))


def record_change(bug, field, removed, added, when):
    BugActivity.objects.create(
        bug=bug,
        who=bug.reporter,
        bug_when=when,
        field=FieldDefinition.objects.get_by_name(field),
        removed=removed,
        added=added,
    )


class TestColumns:
    def test_defaults(self):
        assert stats_columns() == (STATUSES, RESOLUTIONS)

    def test_historical_values(self):
        bug = BugFactory()
        record_change(bug, "bug_status", "NEEDINFO", "NEW", "2026-01-01T00:00:00Z")
        assert legal_values("bug_status") == STATUSES + ["NEEDINFO"]

    def test_value_on(self):
        changes = [(date(2026, 1, 3), "NEW"), (date(2026, 1, 5), "ASSIGNED")]
        assert value_on(changes, "RESOLVED", date(2026, 1, 2)) == "NEW"
        assert value_on(changes, "RESOLVED", date(2026, 1, 4)) == "ASSIGNED"
        assert value_on(changes, "RESOLVED", date(2026, 1, 6)) == "RESOLVED"

    def test_stats_file(self, tmp_path):
        assert stats_file(str(tmp_path), "Web/Server") == str(tmp_path / "Web-Server")


class TestCollectStats:
    @pytest.fixture
    def engine(self):
        product = ProductFactory(name="Engine")
        BugFactory(product=product, bug_status="NEW")
        BugFactory(product=product, bug_status="NEW")
        BugFactory(product=product, bug_status="RESOLVED", resolution="FIXED")
        return product

    def test_new_file(self, tmp_path, engine):
        row = collect_product_stats(
            str(tmp_path), "Engine", STATUSES, RESOLUTIONS, date(2026, 1, 5)
        )
        assert row[0] == "20260105"

        path = tmp_path / "Engine"
        assert fields_line(path) == "# fields: DATE|" + "|".join(STATUSES + RESOLUTIONS) + "\n"
        assert data_rows(path) == ["20260105|0|2|0|0|1|0|0|1|0|0|0|0|0"]
        assert oct(os.stat(path).st_mode & 0o777) == "0o644"

    def test_append(self, tmp_path, engine):
        collect_product_stats(str(tmp_path), "Engine", STATUSES, RESOLUTIONS, date(2026, 1, 5))
        BugFactory(product=engine, bug_status="ASSIGNED")
        collect_product_stats(str(tmp_path), "Engine", STATUSES, RESOLUTIONS, date(2026, 1, 6))
        assert data_rows(tmp_path / "Engine") == [
            "20260105|0|2|0|0|1|0|0|1|0|0|0|0|0",
            "20260106|0|2|1|0|1|0|0|1|0|0|0|0|0",
        ]

    def test_new_column(self, tmp_path, engine):
        collect_product_stats(
            str(tmp_path), "Engine", ["NEW", "RESOLVED"], ["FIXED"], date(2026, 1, 5)
        )
        collect_product_stats(
            str(tmp_path),
            "Engine",
            ["NEW", "ASSIGNED", "RESOLVED"],
            ["FIXED"],
            date(2026, 1, 6),
        )
        path = tmp_path / "Engine"
        assert fields_line(path) == "# fields: DATE|NEW|ASSIGNED|RESOLVED|FIXED\n"
        # the unknown past values stay empty
        assert data_rows(path) == ["20260105|2||1|1", "20260106|2|0|1|1"]

    def test_all_products(self, tmp_path, engine):
        BugFactory(product=ProductFactory(name="Web/Server"), bug_status="NEW")
        products = collect_stats(str(tmp_path), date(2026, 1, 5))
        assert sorted(products) == sorted([ALL_PRODUCTS, "Engine", "Web/Server"])
        assert data_rows(tmp_path / ALL_PRODUCTS) == [
            "20260105|0|3|0|0|1|0|0|1|0|0|0|0|0"
        ]
        assert data_rows(tmp_path / "Web-Server") == [
            "20260105|0|1|0|0|0|0|0|0|0|0|0|0|0"
        ]

    def test_task(self, tmp_path, engine):
        tasks.collect_stats()
        assert (tmp_path / "mining" / "Engine").is_file()

    def test_task_disabled(self, tmp_path, engine, monkeypatch):
        monkeypatch.setenv("STATS_COLLECTOR_ENABLED", "false")
        assert tasks.collect_stats() is None
        assert not (tmp_path / "mining").exists()


class TestRegenerateStats:
    def test_regenerate(self, tmp_path):
        product = ProductFactory(name="Engine")
        with freeze_time("2026-01-01 10:00:00"):
            fixed = BugFactory(product=product, bug_status="RESOLVED", resolution="FIXED")
        with freeze_time("2026-01-02 10:00:00"):
            BugFactory(product=product, bug_status="NEW")
        record_change(fixed, "bug_status", "NEW", "RESOLVED", "2026-01-03T12:00:00Z")
        record_change(fixed, "resolution", "", "FIXED", "2026-01-03T12:00:00Z")

        paths = regenerate_stats(str(tmp_path), date(2026, 1, 4))
        assert str(tmp_path / "Engine") in paths
        assert data_rows(tmp_path / "Engine") == [
            "20260102|0|0|0|0|0|0|0|0|0|0|0|0|0",
            "20260103|0|1|0|0|0|0|0|0|0|0|0|0|0",
            "20260104|0|1|0|0|1|0|0|1|0|0|0|0|0",
        ]
        assert data_rows(tmp_path / ALL_PRODUCTS) == data_rows(tmp_path / "Engine")

    def test_product_without_bugs(self, tmp_path):
        ProductFactory(name="Empty")
        assert regenerate_stats(str(tmp_path), date(2026, 1, 4)) == [None, None]
        assert not (tmp_path / "Empty").exists()


class TestSeries:
    @pytest.fixture
    def creator(self):
        return ProfileFactory(user__username="analyst@example.com")

    def test_collect(self, creator):
        product = ProductFactory(name="Engine")
        BugFactory(product=product, bug_status="NEW")
        BugFactory(product=product, bug_status="RESOLVED", resolution="FIXED")
        series = Series.objects.create(
            name="open",
            category="Engine",
            subcategory="All",
            creator=creator,
            query={"product": "Engine", "is_open": "true"},
        )

        assert collect_series_data(date(2026, 1, 5)) == {series.pk: 1}
        data = SeriesData.objects.get(series=series)
        assert data.series_date == date(2026, 1, 5)
        assert data.series_value == 1

    def test_collect_twice(self, creator):
        series = Series.objects.create(
            name="all", category="Engine", subcategory="All", creator=creator
        )
        collect_series_data(date(2026, 1, 5))
        BugFactory()
        collect_series_data(date(2026, 1, 5))
        assert list(series.data.values_list("series_value", flat=True)) == [1]

    def test_creator_permissions(self, creator):
        BugFactory().groups.add(GroupFactory(name="secret"))
        series = Series.objects.create(
            name="all", category="Engine", subcategory="All", creator=creator
        )
        assert collect_series_data(date(2026, 1, 5)) == {series.pk: 0}

    def test_invalid_query(self, creator):
        Series.objects.create(
            name="broken",
            category="Engine",
            subcategory="All",
            creator=creator,
            query={"votes": "many"},
        )
        assert collect_series_data(date(2026, 1, 5)) == {}
        assert not SeriesData.objects.exists()

    def test_frequency(self, creator):
        weekly = Series.objects.create(
            name="weekly", category="c", subcategory="s", creator=creator, frequency=7
        )
        Series.objects.create(
            name="never", category="c", subcategory="s", creator=creator, frequency=0
        )
        due_days = [
            day
            for day in range(1, 15)
            if weekly in due_series(date(2026, 1, day))
        ]
        assert len(due_days) == 2
        assert due_days[1] - due_days[0] == 7
        assert all(series.frequency for series in due_series(date(2026, 1, 5)))

    def test_task(self, creator, monkeypatch):
        series = Series.objects.create(
            name="all", category="c", subcategory="s", creator=creator
        )
        with freeze_time("2026-01-05 01:00:00"):
            assert tasks.collect_series_data() == {series.pk: 0}
        monkeypatch.setenv("STATS_COLLECTOR_ENABLED", "false")
        assert tasks.collect_series_data() is None
