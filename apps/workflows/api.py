"""
Workflows API endpoints
"""

import logging

from rest_framework import status as http_status
from rest_framework.response import Response
from rest_framework.views import APIView

from bugdb.api_views import RudimentaryUserPathLoggingMixin

from .exceptions import MissingStateException
from .serializers import WorkflowSerializer
from .workflow import WorkflowFramework

logger = logging.getLogger(__name__)


class index(RudimentaryUserPathLoggingMixin, APIView):
    """index API endpoint"""

    def get(self, request, *args, **kwargs):
        """index API endpoint listing available API endpoints"""
        logger.info("getting index")
        from .urls import urlpatterns

        return Response(
            {
                "index": [f"/{url.pattern}" for url in urlpatterns],
            }
        )


class workflows(RudimentaryUserPathLoggingMixin, APIView):
    """workflow info API endpoint"""

    def get(self, request, *args, **kwargs):
        """workflow info API endpoint"""
        logger.info("getting workflows")
        return Response(
            {
                "workflows": WorkflowSerializer(
                    WorkflowFramework().workflows,
                    many=True,
                ).data,
            }
        )


class transitions(RudimentaryUserPathLoggingMixin, APIView):
    """status transitions API endpoint"""

    def get(self, request, status):
        """
        status transitions API endpoint

        lists the statuses the given status may be changed to
        where the status "new" stands for a bug being filed
        """
        logger.info(f"getting transitions from {status}")
        workflow_framework = WorkflowFramework()
        try:
            old = None if status == "new" else workflow_framework.status(status).name
        except MissingStateException as e:
            return Response({"errors": str(e)}, status=http_status.HTTP_404_NOT_FOUND)
        return Response(
            {
                "status": old,
                "can_change_to": [
                    {
                        "name": new,
                        "is_open": workflow_framework.is_open_state(new),
                        "require_comment": workflow_framework.comment_required_on_change_from(
                            old, new
                        ),
                    }
                    for new in workflow_framework.can_change_to(old)
                ],
            }
        )
