"""
serialize bug tracker models
"""

import base64
import binascii
import logging

from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from .constants import EDITUSERS_GROUP
from .models import (
    Attachment,
    Bug,
    Comment,
    Component,
    Flag,
    Product,
    Profile,
)

logger = logging.getLogger(__name__)


def viewer_of(serializer):
    """profile of the requesting user passed in the serializer context"""
    return serializer.context.get("profile")


class LoginField(serializers.Field):
    """profile shown as its login name"""

    def to_representation(self, value):
        return value.login if value is not None else None


class UserSerializer(serializers.ModelSerializer):
    """
    user account as shown to other users

    the e-mail address is hidden from the anonymous users
    and the administrative details are only shown to the user
    managers
    """

    id = serializers.IntegerField(source="pk", read_only=True)
    name = serializers.CharField(source="login", read_only=True)
    real_name = serializers.CharField(source="realname", read_only=True)
    email = serializers.CharField(read_only=True)
    can_login = serializers.SerializerMethodField()

    class Meta:
        model = Profile
        fields = ["id", "name", "real_name", "email", "can_login"]

    def get_can_login(self, obj) -> bool:
        return obj.is_enabled and obj.user.has_usable_password()

    def to_representation(self, instance):
        data = super().to_representation(instance)
        viewer = viewer_of(self)
        if viewer is None:
            data.pop("email")
        elif viewer.in_group(EDITUSERS_GROUP):
            data["email_enabled"] = instance.email_enabled
            data["login_denied_text"] = instance.disabledtext
            data["groups"] = sorted(instance.group_names)
        return data


class WhoamiSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source="pk", read_only=True)
    name = serializers.CharField(source="login", read_only=True)
    real_name = serializers.CharField(source="realname", read_only=True)
    email = serializers.CharField(read_only=True)
    groups = serializers.SerializerMethodField()

    class Meta:
        model = Profile
        fields = ["id", "name", "real_name", "email", "groups"]

    def get_groups(self, obj) -> list[str]:
        return sorted(obj.group_names)


class LoginSerializer(serializers.Serializer):
    login = serializers.CharField()
    password = serializers.CharField(trim_whitespace=False)


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class OfferAccountSerializer(serializers.Serializer):
    email = serializers.CharField()


class UserCreateSerializer(serializers.Serializer):
    email = serializers.CharField()
    full_name = serializers.CharField(required=False, allow_blank=True, default="")
    password = serializers.CharField(
        required=False,
        trim_whitespace=False,
        help_text="An account with the password '*' cannot log in by the password.",
    )


class FlagSerializer(serializers.ModelSerializer):
    name = serializers.CharField(read_only=True)
    type_id = serializers.IntegerField(read_only=True)
    setter = LoginField(read_only=True)
    requestee = LoginField(read_only=True)

    class Meta:
        model = Flag
        fields = [
            "id",
            "name",
            "type_id",
            "status",
            "setter",
            "requestee",
            "creation_date",
            "modification_date",
        ]


class FlagChangeSerializer(serializers.Serializer):
    """
    change of an existing flag given by the id or a new flag
    of the type given by the type_id
    """

    id = serializers.IntegerField(required=False)
    type_id = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=Flag.Status.choices)
    requestee = serializers.CharField(required=False, allow_blank=True)

    def validate(self, data):
        if not data.get("id") and not data.get("type_id"):
            raise serializers.ValidationError(
                "Either the flag id or the flag type_id is required."
            )
        return data


class FlagsUpdateSerializer(serializers.Serializer):
    flags = FlagChangeSerializer(many=True)


class CommentSerializer(serializers.ModelSerializer):
    """
    bug comment

    the worked time is only shown to the timetrackers
    """

    bug_id = serializers.IntegerField(read_only=True)
    creator = LoginField(source="who", read_only=True)
    creation_time = serializers.DateTimeField(source="bug_when", read_only=True)
    text = serializers.CharField(source="body_full", read_only=True)
    is_private = serializers.BooleanField(source="isprivate", read_only=True)

    class Meta:
        model = Comment
        fields = [
            "id",
            "bug_id",
            "creator",
            "creation_time",
            "text",
            "is_private",
            "type",
            "work_time",
        ]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        viewer = viewer_of(self)
        if viewer is None or not viewer.is_timetracker:
            data.pop("work_time")
        return data


class CommentPostSerializer(serializers.Serializer):
    body = serializers.CharField(allow_blank=True, trim_whitespace=False)
    work_time = serializers.CharField(required=False)
    is_private = serializers.BooleanField(required=False, default=False)


@extend_schema_field(OpenApiTypes.BYTE)
class Base64Field(serializers.Field):
    """binary data transferred as base64"""

    def to_representation(self, value):
        return base64.b64encode(bytes(value)).decode("ascii")

    def to_internal_value(self, data):
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, TypeError, ValueError) as exception:
            raise serializers.ValidationError(
                "The data must be base64 encoded."
            ) from exception


class AttachmentSerializer(serializers.ModelSerializer):
    bug_id = serializers.IntegerField(read_only=True)
    file_name = serializers.CharField(source="filename", read_only=True)
    content_type = serializers.CharField(source="mimetype", read_only=True)
    is_patch = serializers.BooleanField(source="ispatch", read_only=True)
    is_obsolete = serializers.BooleanField(source="isobsolete", read_only=True)
    is_private = serializers.BooleanField(source="isprivate", read_only=True)
    creator = LoginField(source="submitter", read_only=True)
    creation_time = serializers.DateTimeField(source="creation_ts", read_only=True)
    size = serializers.SerializerMethodField()
    flags = FlagSerializer(many=True, read_only=True)

    class Meta:
        model = Attachment
        fields = [
            "id",
            "bug_id",
            "file_name",
            "description",
            "content_type",
            "is_patch",
            "is_obsolete",
            "is_private",
            "creator",
            "creation_time",
            "size",
            "flags",
        ]

    def get_size(self, obj) -> int:
        return len(obj.thedata or b"")


class AttachmentDataSerializer(AttachmentSerializer):
    data = Base64Field(source="thedata", read_only=True)

    class Meta(AttachmentSerializer.Meta):
        fields = AttachmentSerializer.Meta.fields + ["data"]


class AttachmentPostSerializer(serializers.Serializer):
    data = Base64Field()
    file_name = serializers.CharField()
    summary = serializers.CharField()
    content_type = serializers.CharField(
        required=False, default="application/octet-stream"
    )
    is_patch = serializers.BooleanField(required=False, default=False)
    is_private = serializers.BooleanField(required=False, default=False)
    comment = serializers.CharField(
        required=False, allow_blank=True, trim_whitespace=False, default=""
    )
    flags = FlagChangeSerializer(many=True, required=False)


class BugSerializer(serializers.ModelSerializer):
    """
    bug as shown to the users who can see it

    the time tracking fields are only shown to the timetrackers
    """

    product = serializers.CharField(source="product.name", read_only=True)
    component = serializers.CharField(source="component.name", read_only=True)
    assigned_to = LoginField(read_only=True)
    qa_contact = LoginField(read_only=True)
    reporter = LoginField(read_only=True)
    is_open = serializers.BooleanField(read_only=True)
    keywords = serializers.ListField(source="keyword_names", read_only=True)
    cc = serializers.ListField(source="cc_logins", read_only=True)
    groups = serializers.ListField(source="group_names", read_only=True)
    dependson = serializers.ListField(source="dependson_ids", read_only=True)
    blocked = serializers.ListField(source="blocked_ids", read_only=True)
    dupe_of = serializers.IntegerField(source="dup_id", read_only=True)
    flags = serializers.SerializerMethodField()
    actual_time = serializers.DecimalField(
        max_digits=9, decimal_places=2, read_only=True
    )

    class Meta:
        model = Bug
        fields = [
            "id",
            "alias",
            "product",
            "component",
            "version",
            "target_milestone",
            "short_desc",
            "bug_status",
            "resolution",
            "is_open",
            "priority",
            "bug_severity",
            "rep_platform",
            "op_sys",
            "bug_file_loc",
            "status_whiteboard",
            "assigned_to",
            "qa_contact",
            "reporter",
            "creation_ts",
            "delta_ts",
            "everconfirmed",
            "reporter_accessible",
            "cclist_accessible",
            "votes",
            "keywords",
            "cc",
            "groups",
            "dependson",
            "blocked",
            "dupe_of",
            "flags",
            "estimated_time",
            "remaining_time",
            "actual_time",
            "deadline",
        ]

    @extend_schema_field(FlagSerializer(many=True))
    def get_flags(self, obj):
        flags = obj.flags.filter(attachment__isnull=True).select_related(
            "type", "setter__user", "requestee__user"
        )
        return FlagSerializer(flags, many=True).data

    def to_representation(self, instance):
        data = super().to_representation(instance)
        viewer = viewer_of(self)
        if viewer is None or not viewer.is_timetracker:
            for field in ("estimated_time", "remaining_time", "actual_time", "deadline"):
                data.pop(field)
        if not settings.USEQACONTACT:
            data.pop("qa_contact")
        if not settings.USEBUGALIASES:
            data.pop("alias")
        return data


class BugPostSerializer(serializers.Serializer):
    """
    new bug

    the lists are given as comma or whitespace separated strings
    """

    product = serializers.CharField()
    component = serializers.CharField()
    version = serializers.CharField()
    short_desc = serializers.CharField(allow_blank=True)
    comment = serializers.CharField(
        required=False, allow_blank=True, trim_whitespace=False, default=""
    )
    commentprivacy = serializers.BooleanField(required=False, default=False)
    bug_status = serializers.CharField(required=False)
    alias = serializers.CharField(required=False, allow_blank=True)
    target_milestone = serializers.CharField(required=False)
    priority = serializers.CharField(required=False)
    bug_severity = serializers.CharField(required=False)
    rep_platform = serializers.CharField(required=False)
    op_sys = serializers.CharField(required=False)
    bug_file_loc = serializers.CharField(required=False, allow_blank=True)
    status_whiteboard = serializers.CharField(required=False, allow_blank=True)
    assigned_to = serializers.CharField(required=False, allow_blank=True)
    qa_contact = serializers.CharField(required=False, allow_blank=True)
    cc = serializers.CharField(required=False, allow_blank=True)
    keywords = serializers.CharField(required=False, allow_blank=True)
    groups = serializers.ListField(child=serializers.CharField(), required=False)
    dependson = serializers.CharField(required=False, allow_blank=True)
    blocked = serializers.CharField(required=False, allow_blank=True)
    estimated_time = serializers.CharField(required=False)
    deadline = serializers.CharField(required=False, allow_blank=True)
    reporter_accessible = serializers.BooleanField(required=False, default=True)
    cclist_accessible = serializers.BooleanField(required=False, default=True)
    flags = FlagChangeSerializer(many=True, required=False)


class ListChangeSerializer(serializers.Serializer):
    """change of a list value by replacing it or by adding and removing items"""

    set = serializers.ListField(child=serializers.CharField(), required=False)
    add = serializers.ListField(child=serializers.CharField(), required=False)
    remove = serializers.ListField(child=serializers.CharField(), required=False)


class BugPutSerializer(serializers.Serializer):
    """
    changes of a bug

    only the given fields are changed
    """

    delta_ts = serializers.DateTimeField(
        help_text=(
            "The delta_ts timestamp attribute is mandatory "
            "on update as it is used to detect mid-air collisions."
        ),
    )
    product = serializers.CharField(required=False)
    component = serializers.CharField(required=False)
    version = serializers.CharField(required=False)
    target_milestone = serializers.CharField(required=False)
    alias = serializers.CharField(required=False, allow_blank=True)
    short_desc = serializers.CharField(required=False, allow_blank=True)
    bug_file_loc = serializers.CharField(required=False, allow_blank=True)
    status_whiteboard = serializers.CharField(required=False, allow_blank=True)
    priority = serializers.CharField(required=False)
    bug_severity = serializers.CharField(required=False)
    rep_platform = serializers.CharField(required=False)
    op_sys = serializers.CharField(required=False)
    deadline = serializers.CharField(required=False, allow_blank=True)
    estimated_time = serializers.CharField(required=False)
    remaining_time = serializers.CharField(required=False)
    reporter_accessible = serializers.BooleanField(required=False)
    cclist_accessible = serializers.BooleanField(required=False)
    assigned_to = serializers.CharField(required=False)
    reset_assigned_to = serializers.BooleanField(required=False)
    qa_contact = serializers.CharField(required=False, allow_blank=True)
    reset_qa_contact = serializers.BooleanField(required=False)
    comment = CommentPostSerializer(required=False)
    comment_is_private = serializers.DictField(
        child=serializers.BooleanField(), required=False
    )
    bug_status = serializers.CharField(required=False)
    resolution = serializers.CharField(required=False, allow_blank=True)
    dupe_of = serializers.CharField(required=False)
    cc = ListChangeSerializer(required=False)
    keywords = ListChangeSerializer(required=False)
    dependson = ListChangeSerializer(required=False)
    blocked = ListChangeSerializer(required=False)
    groups = ListChangeSerializer(required=False)
    flags = FlagChangeSerializer(many=True, required=False)


class VoteSerializer(serializers.Serializer):
    votes = serializers.IntegerField(min_value=0)


class ComponentSerializer(serializers.ModelSerializer):
    default_assigned_to = LoginField(source="initialowner", read_only=True)
    default_qa_contact = LoginField(source="initialqacontact", read_only=True)

    class Meta:
        model = Component
        fields = ["id", "name", "description", "default_assigned_to", "default_qa_contact"]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if not settings.USEQACONTACT:
            data.pop("default_qa_contact")
        return data


class ProductSerializer(serializers.ModelSerializer):
    components = ComponentSerializer(many=True, read_only=True)
    versions = serializers.SerializerMethodField()
    milestones = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "is_active",
            "allows_unconfirmed",
            "votesperuser",
            "maxvotesperbug",
            "votestoconfirm",
            "defaultmilestone",
            "components",
            "versions",
            "milestones",
        ]

    def get_versions(self, obj) -> list[str]:
        return list(obj.version_values())

    def get_milestones(self, obj) -> list[str]:
        return list(obj.milestone_values())

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if not settings.USETARGETMILESTONE:
            data.pop("milestones")
        return data


class ActivityChangeSerializer(serializers.Serializer):
    fieldname = serializers.CharField()
    attachid = serializers.IntegerField(allow_null=True)
    removed = serializers.CharField(allow_blank=True)
    added = serializers.CharField(allow_blank=True)


class ActivitySerializer(serializers.Serializer):
    """changes made by a single user at a single moment"""

    who = serializers.CharField()
    when = serializers.DateTimeField()
    changes = ActivityChangeSerializer(many=True)
