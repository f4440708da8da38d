from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from bugdb.constants import (
    CONTROLMAPMANDATORY,
    CONTROLMAPSHOWN,
    EDITUSERS_GROUP,
    EVT_CHANGED_BY_ME,
    GRANT_REGEXP,
    GROUP_BLESS,
    GROUP_MEMBERSHIP,
    GROUP_VISIBLE,
    MAX_LOGIN_ATTEMPTS,
)
from bugdb.exceptions import (
    AccountExists,
    IllegalEmailAddress,
    MissingVersion,
    ObjectNotFound,
    PasswordTooShort,
    ProductAccessDenied,
    ProductDisabled,
)
from bugdb.models import Bug, GroupGroupMap, Profile, UserGroupMap
from bugdb.tests.factories import (
    BugFactory,
    ComponentFactory,
    GroupControlMapFactory,
    GroupFactory,
    ProductFactory,
    ProfileFactory,
    UserGroupMapFactory,
    VersionFactory,
)

pytestmark = pytest.mark.unit


def enterable_product(**kwargs):
    product = ProductFactory(**kwargs)
    ComponentFactory(product=product)
    VersionFactory(product=product)
    return product


class TestProfileManager:
    def test_login_to_id(self):
        profile = ProfileFactory(user__username="Someone@example.com")
        assert Profile.objects.login_to_id("someone@EXAMPLE.com") == profile.pk
        assert Profile.objects.login_to_id("nobody@example.com") == 0
        with pytest.raises(ObjectNotFound):
            Profile.objects.login_to_id("nobody@example.com", throw=True)

    def test_create_profile(self):
        profile = Profile.objects.create_profile(
            " new@example.com ", realname="New User", password="secret-enough"
        )
        assert profile.login == "new@example.com"
        assert profile.realname == "New User"
        assert profile.user.check_password("secret-enough")
        assert profile.email_settings.exists()
        # the own changes are not mailed by default
        assert not profile.email_settings.filter(event=EVT_CHANGED_BY_ME).exists()

    def test_create_profile_disabled_password(self):
        profile = Profile.objects.create_profile("nopass@example.com")
        assert not profile.user.has_usable_password()

    def test_create_profile_existing(self):
        ProfileFactory(user__username="taken@example.com")
        with pytest.raises(AccountExists):
            Profile.objects.create_profile("TAKEN@example.com")

    @pytest.mark.parametrize("login", ["", "not-an-email", "a b@example.com"])
    def test_create_profile_invalid_login(self, login):
        with pytest.raises(IllegalEmailAddress):
            Profile.objects.create_profile(login)

    def test_create_profile_short_password(self):
        with pytest.raises(PasswordTooShort):
            Profile.objects.create_profile("short@example.com", password="abc")
        assert not Profile.objects.filter(user__username="short@example.com").exists()

    def test_create_profile_regexp_groups(self):
        group = GroupFactory(name="staff", userregexp=r"@staff\.example\.com$")
        profile = Profile.objects.create_profile("member@staff.example.com")
        assert profile.in_group("staff")
        assert UserGroupMap.objects.filter(
            profile=profile, group=group, grant_type=GRANT_REGEXP
        ).exists()


class TestProfileMatch:
    @pytest.fixture
    def profiles(self):
        return [
            ProfileFactory(user__username="alice@example.com", realname="Alice Smith"),
            ProfileFactory(user__username="bob@example.com", realname="Bob Smith"),
            ProfileFactory(
                user__username="carol@example.com",
                realname="Carol Jones",
                disabledtext="gone",
            ),
        ]

    def test_exact(self, profiles):
        assert Profile.objects.match("bob@example.com") == [profiles[1]]

    def test_anonymous_substring(self, profiles):
        """the substring search is only available to the logged in users"""
        assert Profile.objects.match("Smith") == []

    def test_substring(self, profiles):
        found = Profile.objects.match("Smith", viewer=profiles[0])
        assert found == [profiles[0], profiles[1]]

    def test_wildcard(self, profiles):
        found = Profile.objects.match("*@example.com", viewer=profiles[0])
        assert len(found) == 3
        found = Profile.objects.match(
            "*@example.com", viewer=profiles[0], exclude_disabled=True
        )
        assert profiles[2] not in found

    def test_limit(self, profiles):
        assert len(Profile.objects.match("*example*", limit=2, viewer=profiles[0])) == 2

    def test_short_substring(self, profiles):
        assert Profile.objects.match("bo", viewer=profiles[0]) == []


class TestProfileGroups:
    def test_direct_membership(self):
        profile = ProfileFactory()
        UserGroupMapFactory(profile=profile, group=GroupFactory(name="testers"))
        assert profile.in_group("testers")
        assert not profile.in_group("developers")

    def test_inherited_membership(self):
        profile = ProfileFactory()
        member = GroupFactory(name="juniors")
        grantor = GroupFactory(name="everyone")
        UserGroupMapFactory(profile=profile, group=member)
        GroupGroupMap.objects.create(
            member=member, grantor=grantor, grant_type=GROUP_MEMBERSHIP
        )
        assert profile.in_group("everyone")
        assert {member.pk, grantor.pk} <= profile.group_ids

    def test_bless_membership_is_not_membership(self):
        profile = ProfileFactory()
        group = GroupFactory(name="blessed")
        UserGroupMapFactory(profile=profile, group=group, isbless=True)
        assert not profile.in_group("blessed")
        assert profile.can_bless(group.pk)

    def test_bless_inherited(self):
        profile = ProfileFactory()
        member = GroupFactory()
        grantor = GroupFactory()
        UserGroupMapFactory(profile=profile, group=member)
        GroupGroupMap.objects.create(
            member=member, grantor=grantor, grant_type=GROUP_BLESS
        )
        assert profile.can_bless(grantor.pk)
        assert not profile.can_bless(member.pk)

    def test_editusers_bless_all(self):
        profile = ProfileFactory()
        UserGroupMapFactory(profile=profile, group=GroupFactory(name=EDITUSERS_GROUP))
        other = GroupFactory()
        assert profile.can_bless(other.pk)

    def test_per_product_privilege(self):
        profile = ProfileFactory()
        group = GroupFactory()
        UserGroupMapFactory(profile=profile, group=group)
        product = ProductFactory()
        GroupControlMapFactory(group=group, product=product, editbugs=True)
        assert profile.in_group("editbugs", product.pk)
        assert not profile.in_group("editbugs", ProductFactory().pk)
        assert not profile.in_group("editbugs")

    def test_regexp_membership_sync(self):
        GroupFactory(name="partners", userregexp=r"@partner\.com$")
        profile = ProfileFactory(user__username="someone@partner.com")
        profile.derive_regexp_groups()
        assert profile.in_group("partners")

        profile.user.username = "someone@example.com"
        profile.user.save()
        profile.derive_regexp_groups()
        assert not profile.in_group("partners")


class TestProfileRoles:
    def test_insider(self, settings):
        settings.INSIDERGROUP = "insiders"
        profile = ProfileFactory()
        assert not profile.is_insider
        UserGroupMapFactory(profile=profile, group=GroupFactory(name="insiders"))
        profile.flush_caches()
        assert profile.is_insider

    def test_insider_disabled(self, settings):
        settings.INSIDERGROUP = ""
        assert not ProfileFactory().is_insider

    def test_global_watcher(self, settings):
        profile = ProfileFactory(user__username="watcher@example.com")
        settings.GLOBALWATCHERS = "other@example.com, watcher@example.com"
        assert profile.is_global_watcher


class TestUserVisibility:
    def test_everybody_visible(self, settings):
        settings.USEVISIBILITYGROUPS = False
        assert ProfileFactory().can_see_user(ProfileFactory())

    def test_visibility_groups(self, settings):
        settings.USEVISIBILITYGROUPS = True
        viewers = GroupFactory()
        visible = GroupFactory()
        GroupGroupMap.objects.create(
            member=viewers, grantor=visible, grant_type=GROUP_VISIBLE
        )
        viewer = ProfileFactory()
        UserGroupMapFactory(profile=viewer, group=viewers)
        shown = ProfileFactory()
        UserGroupMapFactory(profile=shown, group=visible)
        hidden = ProfileFactory()

        assert viewer.can_see_user(shown)
        assert not viewer.can_see_user(hidden)
        assert Profile.objects.match("*", viewer=viewer) == [shown]


class TestBugVisibility:
    @pytest.fixture
    def secret_bug(self):
        bug = BugFactory()
        bug.groups.add(GroupFactory(name="secret"))
        return bug

    def test_public_bug(self):
        bug = BugFactory()
        assert ProfileFactory().can_see_bug(bug.pk)
        assert Bug.objects.visible_to(None).filter(pk=bug.pk).exists()

    def test_group_restricted(self, secret_bug):
        outsider = ProfileFactory()
        member = ProfileFactory()
        UserGroupMapFactory(profile=member, group=secret_bug.groups.get())

        assert not outsider.can_see_bug(secret_bug.pk)
        assert member.can_see_bug(secret_bug.pk)
        assert not Bug.objects.visible_to(None).filter(pk=secret_bug.pk).exists()

    def test_reporter_accessible(self, secret_bug):
        assert secret_bug.reporter.can_see_bug(secret_bug.pk)
        Bug.objects.filter(pk=secret_bug.pk).update(reporter_accessible=False)
        assert not Profile.objects.get(pk=secret_bug.reporter.pk).can_see_bug(
            secret_bug.pk
        )

    def test_assignee(self, secret_bug):
        assert secret_bug.assigned_to.can_see_bug(secret_bug.pk)

    def test_cc_accessible(self, secret_bug):
        cc = ProfileFactory()
        secret_bug.cc.add(cc)
        assert cc.can_see_bug(secret_bug.pk)
        Bug.objects.filter(pk=secret_bug.pk).update(cclist_accessible=False)
        assert not Profile.objects.get(pk=cc.pk).can_see_bug(secret_bug.pk)

    def test_visible_bugs_filter(self, secret_bug):
        public = BugFactory()
        outsider = ProfileFactory()
        assert outsider.visible_bugs([public.pk, secret_bug.pk]) == [public.pk]


class TestProductAccess:
    def test_enterable(self):
        product = enterable_product()
        profile = ProfileFactory()
        assert profile.can_enter_product(product)
        assert product in profile.get_enterable_products()

    def test_entry_group(self):
        product = enterable_product()
        group = GroupFactory()
        GroupControlMapFactory(group=group, product=product, entry=True)

        outsider = ProfileFactory()
        assert not outsider.can_enter_product(product)
        with pytest.raises(ProductAccessDenied):
            outsider.can_enter_product(product, throw=True)

        member = ProfileFactory()
        UserGroupMapFactory(profile=member, group=group)
        assert member.can_enter_product(product)

    def test_closed_product(self):
        product = enterable_product(is_active=False)
        with pytest.raises(ProductDisabled):
            ProfileFactory().can_enter_product(product, throw=True)

    def test_product_without_versions(self):
        product = ProductFactory()
        ComponentFactory(product=product)
        with pytest.raises(MissingVersion):
            ProfileFactory().can_enter_product(product, throw=True)

    def test_mandatory_group_hides_product(self):
        product = enterable_product()
        group = GroupFactory()
        GroupControlMapFactory(
            group=group,
            product=product,
            membercontrol=CONTROLMAPMANDATORY,
            othercontrol=CONTROLMAPMANDATORY,
        )
        outsider = ProfileFactory()
        assert not outsider.can_see_product(product)

        member = ProfileFactory()
        UserGroupMapFactory(profile=member, group=group)
        assert member.can_see_product(product)
        assert product in member.get_accessible_products()

    def test_shown_group_keeps_product(self):
        product = enterable_product()
        GroupControlMapFactory(
            group=GroupFactory(), product=product, membercontrol=CONTROLMAPSHOWN
        )
        assert ProfileFactory().can_see_product(product)

    def test_can_edit_product(self):
        product = enterable_product()
        group = GroupFactory()
        GroupControlMapFactory(group=group, product=product, canedit=True)
        assert not ProfileFactory().can_edit_product(product.pk)
        member = ProfileFactory()
        UserGroupMapFactory(profile=member, group=group)
        assert member.can_edit_product(product.pk)


class TestLoginFailures:
    def test_lockout(self):
        profile = ProfileFactory()
        for _ in range(MAX_LOGIN_ATTEMPTS - 1):
            profile.note_login_failure("127.0.0.1")
        assert not profile.account_is_locked_out("127.0.0.1")

        profile.note_login_failure("127.0.0.1")
        assert profile.account_is_locked_out("127.0.0.1")
        # other addresses are not affected
        assert not profile.account_is_locked_out("10.0.0.1")

    def test_lockout_expires(self):
        profile = ProfileFactory()
        with freeze_time(timezone.now() - timedelta(minutes=31)):
            for _ in range(MAX_LOGIN_ATTEMPTS):
                profile.note_login_failure("127.0.0.1")
        assert not profile.account_is_locked_out("127.0.0.1")

    def test_clear(self):
        profile = ProfileFactory()
        for _ in range(MAX_LOGIN_ATTEMPTS):
            profile.note_login_failure("127.0.0.1")
        profile.clear_login_failures("127.0.0.1")
        assert not profile.account_is_locked_out("127.0.0.1")
