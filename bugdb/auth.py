import logging

from drf_spectacular.contrib.rest_framework_simplejwt import SimpleJWTScheme
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication

from .models import Profile

_logger = logging.getLogger(__name__)


def get_profile(request):
    """
    profile of the user performing the request

    None stands for the anonymous user
    """
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    return Profile.objects.select_related("user").get(user=user)


class BugdbTokenAuthentication(JWTAuthentication):
    """
    authenticate token

    the tokens issued before the account was disabled are refused
    """

    def authenticate(self, request):
        creds = super().authenticate(request)
        if creds and creds[0].is_authenticated:
            profile = Profile.objects.filter(user=creds[0]).first()
            if profile is None or not profile.is_enabled:
                _logger.info(f"Refused token of disabled user {creds[0].username}")
                raise AuthenticationFailed("The account has been disabled.")
        return creds


class BugdbTokenAuthenticationScheme(SimpleJWTScheme):
    """OpenAPI scheme extension for custom auth class to be properly discovered"""

    target_class = BugdbTokenAuthentication
    name = "BugdbTokenAuthentication"
