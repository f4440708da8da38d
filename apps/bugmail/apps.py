"""

Bug change notifications

"""

from django.apps import AppConfig


class Bugmail(AppConfig):
    """django name"""

    name = "apps.bugmail"
