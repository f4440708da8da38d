import pytest

from bugdb.editing import BugEditor, update_attachment_flags
from bugdb.exceptions import (
    FlagRequesteeDisabled,
    FlagRequesteeUnauthorized,
    FlagStatusInvalid,
    FlagTypeInvalid,
    FlagTypeNotMultiplicable,
    FlagUpdateDenied,
)
from bugdb.flags import FlagEditor, flag_types_for, set_flag
from bugdb.models import BugActivity, Flag, FlagExclusion, FlagType
from bugdb.tests.factories import (
    AttachmentFactory,
    BugFactory,
    ComponentFactory,
    FlagTypeFactory,
    GroupFactory,
    ProductFactory,
    ProfileFactory,
    UserGroupMapFactory,
    VersionFactory,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def review():
    return FlagTypeFactory(name="review", is_multiplicable=False)


class TestFlagTypes:
    def test_applicable(self, review):
        bug = BugFactory()
        assert [flag_type.name for flag_type in flag_types_for(bug)] == ["review"]

    def test_inclusion(self):
        product = ProductFactory()
        FlagTypeFactory(name="qa", inclusions=[(product, None)])
        assert flag_types_for(BugFactory(product=product))
        assert not flag_types_for(BugFactory())

    def test_exclusion(self, review):
        bug = BugFactory()
        FlagExclusion.objects.create(type=review, component=bug.component)
        assert flag_types_for(bug) == []

    def test_attachment_types(self, review):
        FlagTypeFactory(name="approval", target_type=FlagType.TargetType.ATTACHMENT)
        attachment = AttachmentFactory()
        assert [t.name for t in flag_types_for(attachment)] == ["approval"]


class TestFlagEditor:
    def test_set(self, review):
        bug = BugFactory()
        user = ProfileFactory(user__username="setter@example.com")
        changes = set_flag(bug, user, type_id=review.pk, status="+")

        flag = Flag.objects.get(bug=bug)
        assert flag.status == "+"
        assert flag.setter == user
        assert flag.attachment is None
        assert changes == ("", "review+")

    def test_untouched_type(self, review):
        """a new flag with the X status is ignored"""
        bug = BugFactory()
        assert set_flag(bug, ProfileFactory(), type_id=review.pk, status="X") is None
        assert not Flag.objects.exists()

    def test_invalid_status(self, review):
        with pytest.raises(FlagStatusInvalid):
            set_flag(BugFactory(), ProfileFactory(), type_id=review.pk, status="!")

    def test_not_requestable(self):
        flag_type = FlagTypeFactory(is_requestable=False)
        with pytest.raises(FlagStatusInvalid):
            set_flag(BugFactory(), ProfileFactory(), type_id=flag_type.pk, status="?")

    def test_inapplicable_type(self):
        product = ProductFactory()
        flag_type = FlagTypeFactory(inclusions=[(product, None)])
        with pytest.raises(FlagTypeInvalid):
            set_flag(BugFactory(), ProfileFactory(), type_id=flag_type.pk, status="+")

    def test_inactive_type(self):
        flag_type = FlagTypeFactory(is_active=False)
        with pytest.raises(FlagTypeInvalid):
            set_flag(BugFactory(), ProfileFactory(), type_id=flag_type.pk, status="+")

    def test_not_multiplicable(self, review):
        bug = BugFactory()
        user = ProfileFactory()
        set_flag(bug, user, type_id=review.pk, status="+")
        with pytest.raises(FlagTypeNotMultiplicable):
            set_flag(bug, user, type_id=review.pk, status="-")

    def test_multiplicable(self):
        flag_type = FlagTypeFactory(name="needinfo")
        bug = BugFactory()
        editor = FlagEditor(bug, ProfileFactory())
        editor.set_flags(
            [
                {"type_id": flag_type.pk, "status": "?"},
                {"type_id": flag_type.pk, "status": "?"},
            ]
        )
        editor.update()
        assert Flag.objects.filter(bug=bug).count() == 2

    def test_change_and_clear(self, review):
        bug = BugFactory()
        user = ProfileFactory()
        set_flag(bug, user, type_id=review.pk, status="?")
        flag = Flag.objects.get(bug=bug)

        assert set_flag(bug, user, id=flag.pk, status="+") == ("review?", "review+")
        assert set_flag(bug, user, id=flag.pk, status="X") == ("review+", "")
        assert not Flag.objects.filter(bug=bug).exists()

    def test_foreign_flag(self, review):
        user = ProfileFactory()
        other = BugFactory()
        set_flag(other, user, type_id=review.pk, status="+")
        with pytest.raises(FlagTypeInvalid):
            set_flag(BugFactory(), user, id=Flag.objects.get().pk, status="-")


class TestFlagPermissions:
    @pytest.fixture
    def approvers(self):
        return GroupFactory(name="approvers", isbuggroup=False)

    @pytest.fixture
    def approval(self, approvers):
        return FlagTypeFactory(name="approval", grant_group=approvers)

    def test_grant_denied(self, approval):
        with pytest.raises(FlagUpdateDenied):
            set_flag(BugFactory(), ProfileFactory(), type_id=approval.pk, status="+")

    def test_grant_member(self, approval, approvers):
        user = ProfileFactory()
        UserGroupMapFactory(profile=user, group=approvers)
        assert set_flag(BugFactory(), user, type_id=approval.pk, status="+")

    def test_request_allowed(self, approval):
        """anybody may request the flag without a request group"""
        bug = BugFactory()
        set_flag(bug, ProfileFactory(), type_id=approval.pk, status="?")
        assert Flag.objects.get(bug=bug).status == "?"

    def test_request_group(self, approvers):
        requesters = GroupFactory(name="requesters", isbuggroup=False)
        flag_type = FlagTypeFactory(grant_group=approvers, request_group=requesters)
        with pytest.raises(FlagUpdateDenied):
            set_flag(BugFactory(), ProfileFactory(), type_id=flag_type.pk, status="?")


class TestFlagRequestees:
    def test_requestee(self, review, outbox):
        bug = BugFactory(short_desc="needs a look")
        requestee = ProfileFactory(user__username="reviewer@example.com")
        changes = set_flag(
            bug,
            ProfileFactory(),
            type_id=review.pk,
            status="?",
            requestee="reviewer@example.com",
        )

        assert Flag.objects.get(bug=bug).requestee == requestee
        assert changes == ("", "review?(reviewer@example.com)")
        assert len(outbox) == 1
        assert outbox[0].to == ["reviewer@example.com"]
        assert outbox[0].subject == f"Requested: [Bug {bug.pk}] needs a look"

    def test_requestee_on_grant_dropped(self, review):
        """only the requests have requestees"""
        bug = BugFactory()
        ProfileFactory(user__username="reviewer@example.com")
        set_flag(
            bug,
            ProfileFactory(),
            type_id=review.pk,
            status="+",
            requestee="reviewer@example.com",
        )
        assert Flag.objects.get(bug=bug).requestee is None

    def test_requestee_disabled(self):
        flag_type = FlagTypeFactory(is_requesteeble=False)
        ProfileFactory(user__username="reviewer@example.com")
        with pytest.raises(FlagRequesteeDisabled):
            set_flag(
                BugFactory(),
                ProfileFactory(),
                type_id=flag_type.pk,
                status="?",
                requestee="reviewer@example.com",
            )

    def test_requestee_cannot_see_bug(self, review):
        bug = BugFactory()
        bug.groups.add(GroupFactory(name="secret"))
        ProfileFactory(user__username="outsider@example.com")
        with pytest.raises(FlagRequesteeUnauthorized):
            set_flag(
                bug,
                bug.reporter,
                type_id=review.pk,
                status="?",
                requestee="outsider@example.com",
            )
        set_flag(
            bug,
            bug.reporter,
            type_id=review.pk,
            status="?",
            requestee="outsider@example.com",
            skip_roe=True,
        )
        assert Flag.objects.get(bug=bug).requestee is None

    def test_answer_notifies_requester(self, review, outbox):
        bug = BugFactory()
        requester = ProfileFactory(user__username="requester@example.com")
        set_flag(bug, requester, type_id=review.pk, status="?")
        outbox.clear()

        set_flag(bug, ProfileFactory(), id=Flag.objects.get(bug=bug).pk, status="+")
        assert [message.to for message in outbox] == [["requester@example.com"]]
        assert outbox[0].subject.startswith("Granted: ")
        assert "granted requester@example.com's request for review" in outbox[0].body

    def test_cc_list(self, outbox):
        watcher = ProfileFactory(user__username="watcher@example.com")
        flag_type = FlagTypeFactory(name="blocker", cc_list=watcher.login)
        bug = BugFactory()
        set_flag(bug, ProfileFactory(), type_id=flag_type.pk, status="+")
        assert [message.to for message in outbox] == [["watcher@example.com"]]


class TestFlagsOnBugs:
    def test_bug_editor(self, review):
        bug = BugFactory()
        user = ProfileFactory()
        editor = BugEditor(bug, user)
        editor.set_flags([{"type_id": review.pk, "status": "+"}])
        changes = editor.update()

        assert changes["flagtypes.name"] == ("", "review+")
        activity = BugActivity.objects.get(bug=bug, field__name="flagtypes.name")
        assert (activity.removed, activity.added) == ("", "review+")

    def test_attachment_flags(self):
        approval = FlagTypeFactory(
            name="approval", target_type=FlagType.TargetType.ATTACHMENT
        )
        attachment = AttachmentFactory()
        user = ProfileFactory()
        changes = update_attachment_flags(
            user, attachment, [{"type_id": approval.pk, "status": "+"}]
        )

        assert changes == ("", "approval+")
        assert Flag.objects.get().attachment == attachment
        activity = BugActivity.objects.get(bug=attachment.bug)
        assert activity.attachment == attachment
        assert activity.field.name == "flagtypes.name"

    def test_move_removes_invalid(self, review, add_to_group):
        product = ProductFactory(name="FirstProduct")
        review.inclusions.all().delete()
        review.inclusions.create(product=product)
        bug = BugFactory(product=product)
        set_flag(bug, bug.reporter, type_id=review.pk, status="+")

        other = ProductFactory(name="SecondProduct")
        ComponentFactory(product=other, name=bug.component.name)
        VersionFactory(product=other, value=bug.version)
        user = ProfileFactory()
        add_to_group(user, "editbugs", isbuggroup=False)

        bug.refresh_from_db()
        editor = BugEditor(bug, user)
        editor.set_product("SecondProduct")
        changes = editor.update()
        assert changes["flagtypes.name"] == ("review+", "")
        assert not Flag.objects.filter(bug=bug).exists()

    def test_move_retargets(self, add_to_group):
        first = ProductFactory(name="FirstProduct")
        second = ProductFactory(name="SecondProduct")
        old_type = FlagTypeFactory(name="qe", inclusions=[(first, None)])
        new_type = FlagTypeFactory(name="qe", inclusions=[(second, None)])
        bug = BugFactory(product=first)
        set_flag(bug, bug.reporter, type_id=old_type.pk, status="+")

        ComponentFactory(product=second, name=bug.component.name)
        VersionFactory(product=second, value=bug.version)
        user = ProfileFactory()
        add_to_group(user, "editbugs", isbuggroup=False)

        bug.refresh_from_db()
        editor = BugEditor(bug, user)
        editor.set_product("SecondProduct")
        changes = editor.update()
        assert "flagtypes.name" not in changes
        assert Flag.objects.get(bug=bug).type == new_type
