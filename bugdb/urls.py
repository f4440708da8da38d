"""
define urls
"""
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework import routers

from .api_views import (
    BugActivityView,
    BugAttachmentView,
    BugCommentView,
    BugFlagView,
    BugView,
    BugVoteView,
    ProductView,
    UserView,
    healthy,
    whoami,
)
from .constants import BUGDB_API_VERSION

router = routers.DefaultRouter(trailing_slash=False)
router.register(r"users", UserView, basename="users")
router.register(r"bugs", BugView, basename="bugs")
router.register(
    r"bugs/(?P<bug_id>[^/.]+)/comments", BugCommentView, basename="bugcomments"
)
router.register(
    r"bugs/(?P<bug_id>[^/.]+)/attachments",
    BugAttachmentView,
    basename="bugattachments",
)
router.register(r"products", ProductView, basename="products")

urlpatterns = [
    path("healthy", healthy),
    path("whoami", whoami),
    path(f"api/{BUGDB_API_VERSION}/bugs/<str:bug_id>/flags", BugFlagView.as_view()),
    path(f"api/{BUGDB_API_VERSION}/bugs/<str:bug_id>/votes", BugVoteView.as_view()),
    path(
        f"api/{BUGDB_API_VERSION}/bugs/<str:bug_id>/history",
        BugActivityView.as_view(),
    ),
    path(f"api/{BUGDB_API_VERSION}/", include(router.urls)),
    path(
        f"api/{BUGDB_API_VERSION}/schema/", SpectacularAPIView.as_view(), name="schema"
    ),
    path(
        f"api/{BUGDB_API_VERSION}/schema/swagger-ui/",
        SpectacularSwaggerView.as_view(url_name="schema"),
    ),
]
