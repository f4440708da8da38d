from django.conf import settings
from rest_framework.pagination import LimitOffsetPagination


class HardLimitOffsetPagination(LimitOffsetPagination):
    """
    LimitOffsetPagination whose page never exceeds MAX_PAGE_SIZE

    a request asking for more records gets the maximum instead
    """

    default_limit = settings.REST_FRAMEWORK.get("PAGE_SIZE")
    max_limit = settings.REST_FRAMEWORK.get("MAX_PAGE_SIZE")
