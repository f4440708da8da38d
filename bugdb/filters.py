"""
Implement filters for bugdb REST API results
"""

from django.core.validators import EMPTY_VALUES
from django_filters.rest_framework import (
    BaseInFilter,
    BooleanFilter,
    CharFilter,
    DateTimeFilter,
    FilterSet,
    NumberFilter,
    OrderingFilter,
)

from apps.workflows.workflow import WorkflowFramework

from .models import Bug

LT_GT_LOOKUP_EXPRS = ["lt", "gt"]
LTE_GTE_LOOKUP_EXPRS = ["lte", "gte"]


class CharInFilter(BaseInFilter, CharFilter):
    """
    Filter for char csv
    """

    pass


class NumberInFilter(BaseInFilter, NumberFilter):
    """
    Filter for number csv
    """

    pass


class DistinctFilterSet(FilterSet):
    """
    FilterSet enforcing the distinct for the filters through the
    related models so the results would not contain duplicates

    Each subclassed FilterSet should define its own `DISTINCT_FIELDS_PREFIXES`
    """

    DISTINCT_FIELDS_PREFIXES = ()

    def __init__(self, data=None, queryset=None, *, request=None, prefix=None):
        super().__init__(data, queryset, request=request, prefix=prefix)

        if self.DISTINCT_FIELDS_PREFIXES:
            for filter_ in self.filters.values():
                if filter_.field_name.startswith(self.DISTINCT_FIELDS_PREFIXES):
                    filter_.distinct = True


class BugFilter(DistinctFilterSet):
    """
    Filters the bug list by the bug fields

    also used to run the saved queries of the whines and the series
    """

    DISTINCT_FIELDS_PREFIXES = ("keywords__", "cc__", "groups__")

    ids = NumberInFilter(field_name="pk")
    alias = CharInFilter(field_name="alias")
    product = CharInFilter(field_name="product__name")
    component = CharInFilter(field_name="component__name")
    version = CharInFilter(field_name="version")
    target_milestone = CharInFilter(field_name="target_milestone")
    bug_status = CharInFilter(field_name="bug_status")
    resolution = CharInFilter(field_name="resolution")
    priority = CharInFilter(field_name="priority")
    bug_severity = CharInFilter(field_name="bug_severity")
    rep_platform = CharInFilter(field_name="rep_platform")
    op_sys = CharInFilter(field_name="op_sys")
    assigned_to = CharInFilter(field_name="assigned_to__user__username")
    reporter = CharInFilter(field_name="reporter__user__username")
    qa_contact = CharInFilter(field_name="qa_contact__user__username")
    cc = CharInFilter(field_name="cc__user__username")
    keywords = CharInFilter(field_name="keywords__name")
    groups = CharInFilter(field_name="groups__name")
    short_desc = CharFilter(field_name="short_desc", lookup_expr="icontains")
    status_whiteboard = CharFilter(
        field_name="status_whiteboard", lookup_expr="icontains"
    )
    is_open = BooleanFilter(method="is_open_filter")

    changed_after = DateTimeFilter(field_name="delta_ts", lookup_expr="gte")
    changed_before = DateTimeFilter(field_name="delta_ts", lookup_expr="lte")

    order = OrderingFilter(
        fields=(
            "id",
            "creation_ts",
            "delta_ts",
            "priority",
            "bug_severity",
            "bug_status",
            "votes",
        )
    )

    def is_open_filter(self, queryset, name, value):
        if value in EMPTY_VALUES:
            return queryset

        open_states = WorkflowFramework().open_states()
        if value:
            return queryset.filter(bug_status__in=open_states)
        return queryset.exclude(bug_status__in=open_states)

    class Meta:
        model = Bug
        fields = {
            "creation_ts": ["exact"] + LT_GT_LOOKUP_EXPRS + LTE_GTE_LOOKUP_EXPRS,
            "deadline": ["exact"] + LT_GT_LOOKUP_EXPRS + LTE_GTE_LOOKUP_EXPRS,
            "votes": ["exact"] + LT_GT_LOOKUP_EXPRS + LTE_GTE_LOOKUP_EXPRS,
            "everconfirmed": ["exact"],
        }
