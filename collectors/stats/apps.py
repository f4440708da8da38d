"""

Bug statistics collection

"""

from django.apps import AppConfig


class StatsCollector(AppConfig):
    """django name"""

    name = "collectors.stats"
