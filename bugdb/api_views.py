"""
implement bugdb rest api views
"""

import logging
import re
from datetime import datetime

from django.conf import settings
from django.contrib.auth import authenticate
from django.core import signing
from django.db import transaction
from django.template.loader import render_to_string
from django.utils.functional import cached_property
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.fields import DateTimeField
from rest_framework.permissions import (
    AllowAny,
    IsAuthenticated,
    IsAuthenticatedOrReadOnly,
)
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ModelViewSet, ReadOnlyModelViewSet, ViewSet
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from apps.bugmail.tasks import send_bugmail

from .auth import get_profile
from .constants import (
    ACCOUNT_TOKEN_MAX_AGE,
    ACCOUNT_TOKEN_SALT,
    BUGDB_API_VERSION,
    DISABLED_PASSWORD,
    EDITUSERS_GROUP,
)
from .editing import (
    BugEditor,
    cast_vote,
    check_is_visible,
    create_attachment,
    create_bug,
    get_bug,
    update_attachment_flags,
)
from .exceptions import (
    AccountCreationDisabled,
    AccountCreationRestricted,
    AccountDisabled,
    AccountLockedOut,
    AuthFailure,
    CommentRequired,
    InvalidToken,
    LoginRequired,
    ObjectNotFound,
    UserAccessDenied,
)
from .filters import BugFilter
from .helpers import split_list, trim
from .models import Bug, Profile, Vote
from .models.bug import bug_activity
from .serializer import (
    ActivitySerializer,
    AttachmentDataSerializer,
    AttachmentPostSerializer,
    AttachmentSerializer,
    BugPostSerializer,
    BugPutSerializer,
    BugSerializer,
    CommentPostSerializer,
    CommentSerializer,
    FlagSerializer,
    FlagsUpdateSerializer,
    LoginSerializer,
    LogoutSerializer,
    OfferAccountSerializer,
    ProductSerializer,
    UserCreateSerializer,
    UserSerializer,
    VoteSerializer,
    WhoamiSerializer,
)
from .tasks import async_send_email

logger = logging.getLogger(__name__)
api_logger = logging.getLogger("api_req")

bug_id_param = OpenApiParameter(
    "bug_id",
    type=str,
    location=OpenApiParameter.PATH,
    description="The id or the alias of the bug.",
)
new_since_param = OpenApiParameter(
    "new_since",
    type=OpenApiTypes.DATETIME,
    location=OpenApiParameter.QUERY,
    description="Only the records created after the given moment are returned.",
)


@api_view(["GET"])
@permission_classes((AllowAny,))
def healthy(request: Request) -> Response:
    """unauthenticated view providing healthcheck on bugdb service"""
    return Response()


class RudimentaryUserPathLoggingMixin:
    # Logs the user, the HTTP method and path and how long the request took.
    # (This is not a docstring so as not to pollute the generated schema.)

    def initialize_request(self, request, *args, **kwargs):
        """
        Log beginning of API request.
        """

        request = super().initialize_request(request, *args, **kwargs)

        if getattr(self, "swagger_fake_view", False):
            return request

        if request.user and request.user.is_authenticated:
            user = f"USER:{request.user.username}"
        elif request.user:
            user = f"USER_UNAUTH:{str(request.user)}"
        else:
            user = f"USER_NONE:{repr(request.user)}"

        method = request.method.upper()
        path = request.get_full_path()

        request._rudimentary_user_path_logging = {
            "method": method,
            "path": path,
            "start": datetime.now(),
            "user": user,
        }

        api_logger.info(f"{user} at {method} {path}")

        return request

    def finalize_response(self, request, response, *args, **kwargs):
        """
        Log end of API request.
        """
        response = super().finalize_response(request, response, *args, **kwargs)

        logging_info = getattr(request, "_rudimentary_user_path_logging", None)
        if getattr(self, "swagger_fake_view", False) or logging_info is None:
            return response

        timediff = datetime.now() - logging_info["start"]
        ms_formatted = "{:6.0f}".format(timediff.total_seconds() * 1000)

        api_logger.info(
            f"END in {ms_formatted} ms {logging_info['user']} "
            f"at {logging_info['method']} {logging_info['path']}"
        )

        return response


def get_valid_http_methods(cls, excluded=None):
    """
    Removes the excluded HTTP methods and the ones blacklisted in the settings
    from a view, all the unsafe methods are removed in the read-only mode
    """
    excluded_methods = [] if excluded is None else excluded
    unsafe_methods = ("patch", "post", "put", "delete", "connect", "trace")
    valid_methods = []
    for method in cls.http_method_names:
        if method in excluded_methods:
            continue
        if method in settings.BLACKLISTED_HTTP_METHODS:
            continue
        if settings.READONLY_MODE and method in unsafe_methods:
            continue
        valid_methods.append(method)
    return valid_methods


def notify_changes(bug_ids, changer):
    """mail the bug changes once the transaction is committed"""
    forced = {"changer": changer.login}
    for bug_id in sorted(set(bug_ids)):
        transaction.on_commit(
            lambda bug_id=bug_id: send_bugmail.delay(bug_id, forced)
        )


def affected_bug_ids(bug, changes):
    """the bug and the other bugs touched by its changes"""
    bug_ids = [bug.pk]
    for field in ("dependson", "blocked"):
        if field in changes:
            removed, added = changes[field]
            bug_ids.extend(int(bug_id) for bug_id in split_list(removed + " " + added))
    if changes.get("dup_id", (None, None))[1]:
        bug_ids.append(changes["dup_id"][1])
    return bug_ids


class ProfileMixin:
    """access to the profile of the requesting user"""

    @cached_property
    def profile(self):
        return get_profile(self.request)

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["profile"] = self.profile
        return context


class SubBugViewGetMixin(ProfileMixin):
    def get_bug(self):
        """
        Gets the bug given in the URL checking the user can see it.
        """
        bug = get_bug(self.kwargs["bug_id"])
        check_is_visible(bug, self.profile)
        return bug

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            # get_queryset depends on the bug not available at schema generation time
            return self.serializer_class.Meta.model.objects.none()
        return self.get_bug_queryset(self.get_bug())


# users


@extend_schema(responses=WhoamiSerializer)
@api_view(["GET"])
@permission_classes((IsAuthenticated,))
def whoami(request: Request) -> Response:
    """View that provides information about the currently logged-in user"""
    return Response(WhoamiSerializer(get_profile(request)).data)


@extend_schema_view(
    list=extend_schema(
        responses=UserSerializer(many=True),
        parameters=[
            OpenApiParameter(
                "names",
                type={"type": "array", "items": {"type": "string"}},
                location=OpenApiParameter.QUERY,
                description="Login names of the users separated by commas.",
            ),
            OpenApiParameter(
                "ids",
                type={"type": "array", "items": {"type": "integer"}},
                location=OpenApiParameter.QUERY,
                description="Ids of the users separated by commas.",
            ),
            OpenApiParameter(
                "match",
                type={"type": "array", "items": {"type": "string"}},
                location=OpenApiParameter.QUERY,
                description="Strings matched against the login and the real names.",
            ),
        ],
    ),
    create=extend_schema(request=UserCreateSerializer),
)
class UserView(RudimentaryUserPathLoggingMixin, ProfileMixin, ViewSet):
    permission_classes = [AllowAny]

    def get_serializer_context(self):
        return {"request": self.request, "profile": self.profile}

    def list(self, request, *args, **kwargs):
        """
        users given by the login names and the ids or matching the strings

        only the logged in users may ask for the ids or the matches
        """
        names = split_list(request.query_params.get("names"))
        ids = split_list(request.query_params.get("ids"))
        matches = split_list(request.query_params.get("match"))
        profile = self.profile

        if profile is None and (ids or matches):
            raise LoginRequired("You must log in to search the users by ids or by matching.")

        users = {}
        for name in names:
            user_id = Profile.objects.login_to_id(name, throw=True)
            users[user_id] = Profile.objects.select_related("user").get(pk=user_id)

        for user_id in ids:
            if not user_id.isdigit():
                raise ValidationError({"ids": f"Invalid user id {user_id}."})
            user = Profile.objects.select_related("user").filter(pk=int(user_id)).first()
            if user is None:
                raise ObjectNotFound(f"There is no user with the id {user_id}.")
            if not profile.can_see_user(user):
                raise UserAccessDenied(f"You are not allowed to access the user {user_id}.")
            users[user.pk] = user

        for text in matches:
            for user in Profile.objects.match(
                text, limit=settings.MAXUSERMATCHES, viewer=profile
            ):
                users[user.pk] = user

        serializer = UserSerializer(
            list(users.values()), many=True, context=self.get_serializer_context()
        )
        return Response({"users": serializer.data})

    def create(self, request, *args, **kwargs):
        """create a new account by a user manager"""
        profile = self.profile
        if profile is None or not profile.in_group(EDITUSERS_GROUP):
            raise UserAccessDenied("You are not allowed to create user accounts.")

        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = Profile.objects.create_profile(
            serializer.validated_data["email"],
            realname=serializer.validated_data["full_name"],
            password=serializer.validated_data.get("password") or DISABLED_PASSWORD,
        )
        return Response({"id": user.pk}, status=status.HTTP_201_CREATED)

    @extend_schema(
        request=LoginSerializer,
        responses={
            200: {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "refresh": {"type": "string"},
                    "access": {"type": "string"},
                },
            }
        },
    )
    @action(detail=False, methods=["post"])
    def login(self, request, *args, **kwargs):
        """
        Takes the login and the password and returns an access and refresh JWT pair.

        the logins from an address are refused after too many failures
        """
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        login = trim(serializer.validated_data["login"])
        ip_addr = request.META.get("REMOTE_ADDR", "")

        user_id = Profile.objects.login_to_id(login)
        if not user_id:
            raise AuthFailure("The username or password you entered is not valid.")
        profile = Profile.objects.select_related("user").get(pk=user_id)

        if profile.account_is_locked_out(ip_addr):
            raise AccountLockedOut(
                "Your account has been locked out after too many failed login attempts."
            )

        user = authenticate(
            request,
            username=profile.login,
            password=serializer.validated_data["password"],
        )
        if user is None:
            # the failure is recorded so the response must not roll it back
            profile.note_login_failure(ip_addr)
            if profile.account_is_locked_out(ip_addr):
                logger.warning(f"Account {profile.login} locked out from {ip_addr}")
            return Response(
                {
                    "detail": "The username or password you entered is not valid.",
                    "error": AuthFailure.error,
                },
                status=AuthFailure.http_code,
            )

        if not profile.is_enabled:
            raise AccountDisabled(profile.disabledtext)

        profile.clear_login_failures(ip_addr)
        refresh_token = RefreshToken.for_user(user)
        return Response(
            {
                "id": profile.pk,
                "refresh": str(refresh_token),
                "access": str(refresh_token.access_token),
            }
        )

    @extend_schema(request=LogoutSerializer, responses={200: {}})
    @action(detail=False, methods=["post"])
    def logout(self, request, *args, **kwargs):
        """invalidate the refresh token"""
        serializer = LogoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            RefreshToken(serializer.validated_data["refresh"]).blacklist()
        except TokenError as exception:
            raise ValidationError({"refresh": str(exception)}) from exception
        return Response()

    @extend_schema(request=OfferAccountSerializer, responses={200: {}})
    @action(detail=False, methods=["post"])
    def offer_account_by_email(self, request, *args, **kwargs):
        """
        mail a token to the address allowing to create an account for it

        the address has to match the account creation regular expression
        """
        serializer = OfferAccountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = trim(serializer.validated_data["email"])

        regexp = settings.CREATEEMAILREGEXP
        if not regexp:
            raise AccountCreationDisabled("User account creation has been disabled.")
        if not re.search(regexp, email):
            raise AccountCreationRestricted(
                f"User account creation is not allowed for {email}."
            )
        email = Profile.objects.check_login_name_for_creation(email)

        token = signing.dumps({"login": email}, salt=ACCOUNT_TOKEN_SALT)
        body = render_to_string(
            "bugdb/account_offer.txt",
            {
                "email": email,
                "token": token,
                "urlbase": settings.URLBASE,
                "expiration_days": ACCOUNT_TOKEN_MAX_AGE // (24 * 60 * 60),
            },
        )
        transaction.on_commit(
            lambda: async_send_email.delay(
                subject="Bugzilla: confirm account creation", to=[email], body=body
            )
        )
        return Response()

    @extend_schema(
        request={
            "application/json": {
                "type": "object",
                "properties": {
                    "token": {"type": "string"},
                    "full_name": {"type": "string"},
                    "password": {"type": "string"},
                },
            }
        }
    )
    @action(detail=False, methods=["post"])
    def confirm_account(self, request, *args, **kwargs):
        """create the account offered by the mailed token"""
        try:
            offer = signing.loads(
                request.data.get("token", ""),
                salt=ACCOUNT_TOKEN_SALT,
                max_age=ACCOUNT_TOKEN_MAX_AGE,
            )
        except signing.BadSignature as exception:
            raise InvalidToken("The token is invalid or it has expired.") from exception

        user = Profile.objects.create_profile(
            offer["login"],
            realname=request.data.get("full_name", ""),
            password=request.data.get("password", ""),
        )
        return Response({"id": user.pk}, status=status.HTTP_201_CREATED)


# bugs


@extend_schema_view(
    list=extend_schema(responses=BugSerializer(many=True)),
    retrieve=extend_schema(responses=BugSerializer, parameters=[bug_id_param]),
    create=extend_schema(
        request=BugPostSerializer,
        responses={201: {"type": "object", "properties": {"id": {"type": "integer"}}}},
    ),
    update=extend_schema(request=BugPutSerializer, parameters=[bug_id_param]),
    partial_update=extend_schema(request=BugPutSerializer, parameters=[bug_id_param]),
)
class BugView(RudimentaryUserPathLoggingMixin, ProfileMixin, ModelViewSet):
    serializer_class = BugSerializer
    filter_backends = (DjangoFilterBackend,)
    filterset_class = BugFilter
    lookup_url_kwarg = "bug_id"
    # bugs are never deleted
    http_method_names = get_valid_http_methods(ModelViewSet, excluded=["delete"])
    permission_classes = [IsAuthenticatedOrReadOnly]

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Bug.objects.none()
        return (
            Bug.objects.visible_to(self.profile)
            .select_related(
                "product",
                "component",
                "assigned_to__user",
                "qa_contact__user",
                "reporter__user",
            )
            .order_by("pk")
        )

    def get_object(self):
        """get the bug by its id or alias"""
        bug = get_bug(self.kwargs[self.lookup_url_kwarg])
        check_is_visible(bug, self.profile)
        return bug

    def create(self, request, *args, **kwargs):
        serializer = BugPostSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bug = create_bug(self.profile, **serializer.validated_data)
        notify_changes([bug.pk] + bug.dependson_ids + bug.blocked_ids, self.profile)
        return Response(
            {"id": bug.pk},
            status=status.HTTP_201_CREATED,
            headers={"Location": f"/bugdb/api/{BUGDB_API_VERSION}/bugs/{bug.pk}"},
        )

    def update(self, request, *args, **kwargs):
        """
        change the bug returning the changes made

        the delta_ts of the bug as it was read is required
        to detect the conflicting changes
        """
        serializer = BugPutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        params = dict(serializer.validated_data)

        bug = self.get_object()
        bug.delta_ts = params.pop("delta_ts")
        editor = BugEditor(bug, self.profile)
        editor.set_all(params)
        changes = editor.update()
        notify_changes(affected_bug_ids(bug, changes), self.profile)

        return Response(
            {
                "id": bug.pk,
                "delta_ts": bug.delta_ts,
                "changes": {
                    field: {"removed": removed, "added": added}
                    for field, (removed, added) in changes.items()
                },
            }
        )

    def partial_update(self, request, *args, **kwargs):
        # only the given fields are ever changed
        return self.update(request, *args, **kwargs)


@extend_schema_view(
    list=extend_schema(parameters=[bug_id_param, new_since_param]),
    retrieve=extend_schema(
        parameters=[
            bug_id_param,
            OpenApiParameter("comment_id", type=int, location=OpenApiParameter.PATH),
        ]
    ),
    create=extend_schema(request=CommentPostSerializer, parameters=[bug_id_param]),
)
class BugCommentView(RudimentaryUserPathLoggingMixin, SubBugViewGetMixin, ModelViewSet):
    serializer_class = CommentSerializer
    http_method_names = get_valid_http_methods(
        ModelViewSet, excluded=["delete", "put", "patch"]
    )
    permission_classes = [IsAuthenticatedOrReadOnly]
    lookup_url_kwarg = "comment_id"

    def get_bug_queryset(self, bug):
        """the private comments are left out for the non-insiders"""
        new_since = self.request.query_params.get("new_since")
        if new_since:
            new_since = DateTimeField().to_internal_value(new_since)
        return bug.comments(viewer=self.profile, after=new_since or None)

    def create(self, request, *args, **kwargs):
        serializer = CommentPostSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if not trim(serializer.validated_data["body"]):
            raise CommentRequired("You must enter a comment.")

        bug = self.get_bug()
        editor = BugEditor(bug, self.profile)
        editor.add_comment(
            serializer.validated_data["body"],
            work_time=serializer.validated_data.get("work_time"),
            isprivate=serializer.validated_data["is_private"],
        )
        editor.update()
        notify_changes([bug.pk], self.profile)

        comment = bug.comment_set.filter(who=self.profile).order_by("-pk").first()
        return Response({"id": comment.pk}, status=status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(parameters=[bug_id_param]),
    retrieve=extend_schema(
        responses=AttachmentDataSerializer,
        parameters=[
            bug_id_param,
            OpenApiParameter("attachment_id", type=int, location=OpenApiParameter.PATH),
        ],
    ),
    create=extend_schema(request=AttachmentPostSerializer, parameters=[bug_id_param]),
)
class BugAttachmentView(
    RudimentaryUserPathLoggingMixin, SubBugViewGetMixin, ModelViewSet
):
    serializer_class = AttachmentSerializer
    http_method_names = get_valid_http_methods(
        ModelViewSet, excluded=["delete", "put", "patch"]
    )
    permission_classes = [IsAuthenticatedOrReadOnly]
    lookup_url_kwarg = "attachment_id"

    def get_bug_queryset(self, bug):
        queryset = bug.attachments.select_related("submitter__user").prefetch_related(
            "flags__type", "flags__setter__user", "flags__requestee__user"
        )
        if self.profile is None or not self.profile.is_insider:
            queryset = queryset.filter(isprivate=False)
        return queryset.order_by("pk")

    def get_serializer_class(self):
        if self.action == "retrieve":
            return AttachmentDataSerializer
        return AttachmentSerializer

    def create(self, request, *args, **kwargs):
        serializer = AttachmentPostSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        bug = self.get_bug()
        attachment = create_attachment(
            self.profile,
            bug,
            data["data"],
            data["file_name"],
            data["summary"],
            mimetype=data["content_type"],
            ispatch=data["is_patch"],
            isprivate=data["is_private"],
            comment=data["comment"],
            flags=data.get("flags"),
        )
        notify_changes([bug.pk], self.profile)
        return Response({"id": attachment.pk}, status=status.HTTP_201_CREATED)


class BugFlagView(RudimentaryUserPathLoggingMixin, SubBugViewGetMixin, APIView):
    permission_classes = [IsAuthenticatedOrReadOnly]

    @extend_schema(responses=FlagSerializer(many=True), parameters=[bug_id_param])
    def get(self, request, *args, **kwargs):
        """flags of the bug and of its attachments the user can see"""
        bug = self.get_bug()
        flags = bug.flags.select_related("type", "setter__user", "requestee__user")
        if self.profile is None or not self.profile.is_insider:
            flags = flags.exclude(attachment__isprivate=True)
        data = []
        for flag in flags:
            item = FlagSerializer(flag).data
            item["attachment_id"] = flag.attachment_id
            data.append(item)
        return Response({"flags": data})

    @extend_schema(
        request=FlagsUpdateSerializer,
        parameters=[
            bug_id_param,
            OpenApiParameter(
                "attachment_id",
                type=int,
                location=OpenApiParameter.QUERY,
                description="Change the flags of the attachment instead of the bug.",
            ),
        ],
    )
    def post(self, request, *args, **kwargs):
        """change the flags of the bug or of one of its attachments"""
        serializer = FlagsUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        changes = [dict(change) for change in serializer.validated_data["flags"]]

        bug = self.get_bug()
        attachment_id = request.query_params.get("attachment_id")
        if attachment_id:
            attachment = bug.attachments.filter(pk=attachment_id).first()
            if attachment is None:
                raise ObjectNotFound(
                    f"Attachment {attachment_id} does not belong to bug {bug.pk}."
                )
            flag_changes = update_attachment_flags(self.profile, attachment, changes)
        else:
            editor = BugEditor(bug, self.profile)
            editor.set_flags(changes)
            flag_changes = editor.update().get("flagtypes.name")

        notify_changes([bug.pk], self.profile)
        removed, added = flag_changes or ("", "")
        return Response({"id": bug.pk, "removed": removed, "added": added})


class BugVoteView(RudimentaryUserPathLoggingMixin, SubBugViewGetMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses=VoteSerializer, parameters=[bug_id_param])
    def get(self, request, *args, **kwargs):
        """the votes of the user for the bug and the bug total"""
        bug = self.get_bug()
        vote = Vote.objects.filter(who=self.profile, bug=bug).first()
        return Response(
            {"votes": vote.vote_count if vote else 0, "total": bug.votes}
        )

    @extend_schema(request=VoteSerializer, parameters=[bug_id_param])
    def post(self, request, *args, **kwargs):
        """set the number of the user's votes for the bug"""
        serializer = VoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bug = self.get_bug()
        was_confirmed = bug.everconfirmed
        total = cast_vote(self.profile, bug, serializer.validated_data["votes"])
        # the popular vote confirmation is a change worth a mail
        if bug.everconfirmed and not was_confirmed:
            notify_changes([bug.pk], self.profile)
        return Response(
            {"votes": serializer.validated_data["votes"], "total": total}
        )


class BugActivityView(RudimentaryUserPathLoggingMixin, SubBugViewGetMixin, APIView):
    permission_classes = [IsAuthenticatedOrReadOnly]

    @extend_schema(
        responses=ActivitySerializer(many=True),
        parameters=[bug_id_param, new_since_param],
    )
    def get(self, request, *args, **kwargs):
        """
        the bug history

        the time tracking changes are shown to the timetrackers only
        """
        bug = self.get_bug()
        since = request.query_params.get("new_since")
        since = DateTimeField().to_internal_value(since) if since else None
        history = bug_activity(bug, viewer=self.profile, since=since)
        return Response({"history": ActivitySerializer(history, many=True).data})


# products


@extend_schema_view(
    list=extend_schema(
        parameters=[
            OpenApiParameter(
                "type",
                type=str,
                enum=["selectable", "enterable", "accessible"],
                location=OpenApiParameter.QUERY,
                description=(
                    "The products the user can search or file bugs into or both. "
                    "Defaults to accessible."
                ),
            ),
        ]
    )
)
class ProductView(RudimentaryUserPathLoggingMixin, ProfileMixin, ReadOnlyModelViewSet):
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated]
    lookup_url_kwarg = "product_id"

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return ProductSerializer.Meta.model.objects.none()

        product_type = self.request.query_params.get("type", "accessible")
        getters = {
            "selectable": self.profile.get_selectable_products,
            "enterable": self.profile.get_enterable_products,
            "accessible": self.profile.get_accessible_products,
        }
        if product_type not in getters:
            raise ValidationError({"type": f"Invalid product type {product_type}."})
        return getters[product_type]().prefetch_related(
            "components__initialowner__user",
            "components__initialqacontact__user",
        ).order_by("name")

