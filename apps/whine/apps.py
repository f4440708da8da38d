"""

Scheduled bug reports

"""

from django.apps import AppConfig


class Whine(AppConfig):
    """django name"""

    name = "apps.whine"
