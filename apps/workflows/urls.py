"""
Workflows URLs
"""

import logging

from django.urls import path

from .api import index, transitions, workflows
from .constants import WORKFLOWS_API_VERSION

logger = logging.getLogger(__name__)

urlpatterns = [
    path("", index.as_view()),
    path(f"api/{WORKFLOWS_API_VERSION}/workflows", workflows.as_view()),
    path(
        f"api/{WORKFLOWS_API_VERSION}/workflows/transitions/<str:status>",
        transitions.as_view(),
    ),
]
