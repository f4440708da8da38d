"""
    bugdb-service
"""

from django.apps import AppConfig


class BugdbConfig(AppConfig):
    name = "bugdb"
    default_auto_field = "django.db.models.AutoField"
