import logging
import re
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import User
from django.db import models, transaction
from django.db.models import Exists, OuterRef, Q
from django.utils import timezone
from django.utils.functional import cached_property

from ..constants import (
    CONTROLMAPMANDATORY,
    DISABLED_PASSWORD,
    EDITUSERS_GROUP,
    EVT_CC,
    EVT_CHANGED_BY_ME,
    GLOBAL_EVENTS,
    GRANT_REGEXP,
    GROUP_BLESS,
    GROUP_VISIBLE,
    LOGIN_LOCKOUT_INTERVAL,
    MAX_LOGIN_ATTEMPTS,
    NEG_EVENTS,
    PER_PRODUCT_PRIVILEGES,
    POS_EVENTS,
    REL_ANY,
    REL_GLOBAL_WATCHER,
    REL_REPORTER,
    RELATIONSHIPS,
    USER_PASSWORD_MIN_LENGTH,
)
from ..exceptions import (
    AccountExists,
    IllegalEmailAddress,
    MissingComponent,
    MissingVersion,
    NoProducts,
    ObjectNotFound,
    PasswordsDontMatch,
    PasswordTooShort,
    ProductAccessDenied,
    ProductDisabled,
)
from ..helpers import login_to_email, split_list, trim, validate_email_syntax
from .group import Group, GroupControlMap, GroupGroupMap, UserGroupMap
from .product import Product

logger = logging.getLogger(__name__)


def validate_password(password, matchpassword=None):
    """check the password length and that its confirmation matches"""
    if len(password or "") < USER_PASSWORD_MIN_LENGTH:
        raise PasswordTooShort(
            f"The password must be at least {USER_PASSWORD_MIN_LENGTH} characters long."
        )
    if matchpassword is not None and password != matchpassword:
        raise PasswordsDontMatch("The two passwords you entered did not match.")
    return True


class ProfileManager(models.Manager):
    def login_to_id(self, login, throw=False):
        """case-insensitive lookup of the user id by the login name"""
        profile = self.filter(user__username__iexact=login).first()
        if profile is not None:
            return profile.pk
        if throw:
            raise ObjectNotFound(f"There is no user named '{login}'.")
        return 0

    def user_id_to_login(self, user_id):
        profile = self.filter(pk=user_id).select_related("user").first()
        return profile.login if profile is not None else ""

    def is_available_username(self, login):
        return not self.login_to_id(login)

    def check_login_name_for_creation(self, login):
        """validate the login of a new account returning the trimmed login"""
        login = trim(login)
        if not login:
            raise IllegalEmailAddress("You must enter a login name.")
        if not validate_email_syntax(login):
            raise IllegalEmailAddress(f"The e-mail address '{login}' is invalid.")
        if not self.is_available_username(login):
            raise AccountExists(f"There is already an account with the login {login}.")
        return login

    @transaction.atomic
    def create_profile(self, login, realname="", password=DISABLED_PASSWORD, **extra):
        """
        create a new account with the default mail settings

        the password "*" creates an account which cannot log in
        using the password
        """
        login = self.check_login_name_for_creation(login)
        user = User(username=login, email=login_to_email(login))
        if password == DISABLED_PASSWORD:
            user.set_unusable_password()
        else:
            validate_password(password)
            user.set_password(password)
        user.save()

        profile = self.create(user=user, realname=trim(realname) or "", **extra)
        profile.create_default_email_settings()
        profile.derive_regexp_groups()
        logger.info(f"Created user account {login}")
        return profile

    def match(self, text, limit=None, exclude_disabled=False, viewer=None):
        """
        users whose login or real name matches the text

        the wildcards are tried first then the exact login match and
        finally the substring match of at least three characters

        the wildcard and substring searches are only available
        to the logged in viewers
        """
        if not text or not text.strip():
            return []

        def restrict(queryset):
            if settings.USEVISIBILITYGROUPS:
                visible = viewer.visible_groups_inherited() if viewer else []
                queryset = queryset.filter(
                    group_maps__isbless=False, group_maps__group_id__in=visible
                )
            if exclude_disabled:
                queryset = queryset.filter(disabledtext="")
            queryset = queryset.distinct().order_by("user__username")
            return list(queryset[:limit] if limit else queryset)

        users = []
        if "*" in text and viewer is not None:
            pattern = "^" + ".*".join(re.escape(part) for part in text.split("*")) + "$"
            users = restrict(
                self.select_related("user").filter(
                    Q(user__username__iregex=pattern) | Q(realname__iregex=pattern)
                )
            )
        else:
            # exact matches do not care if the user is disabled
            users = list(
                self.select_related("user").filter(user__username__iexact=text)[:1]
            )

        if not users and len(text) >= 3 and viewer is not None:
            users = restrict(
                self.select_related("user").filter(
                    Q(user__username__icontains=text) | Q(realname__icontains=text)
                )
            )
        return users


class Profile(models.Model):
    """
    bug tracker user account

    the login name is the username of the bound Django user
    """

    user = models.OneToOneField(
        User,
        primary_key=True,
        on_delete=models.CASCADE,
        related_name="profile",
    )
    realname = models.CharField(max_length=255, blank=True)
    # non-empty text disables the account and is shown on login attempts
    disabledtext = models.TextField(blank=True)
    disable_mail = models.BooleanField(default=False)
    mybugslink = models.BooleanField(default=True)
    watched = models.ManyToManyField(
        "self",
        through="Watch",
        through_fields=("watcher", "watched"),
        symmetrical=False,
        related_name="watchers",
    )

    objects = ProfileManager()

    class Meta:
        ordering = ["user__username"]

    def __str__(self):
        return self.login

    # identity

    @property
    def login(self):
        return self.user.username

    @property
    def name(self):
        return self.realname

    @property
    def email(self):
        return login_to_email(self.login)

    @property
    def nick(self):
        """the login without the domain part"""
        return self.login.split("@")[0]

    @property
    def identity(self):
        return f"{self.realname} <{self.login}>" if self.realname else self.login

    @property
    def is_enabled(self):
        return not self.disabledtext

    @property
    def email_enabled(self):
        return not self.disable_mail

    # caches

    _CACHED = (
        "group_ids",
        "group_names",
        "bless_group_ids",
        "_visible_groups_direct",
        "_visible_groups_inherited",
        "is_insider",
        "is_timetracker",
        "is_global_watcher",
        "_selectable_product_ids",
        "_enterable_product_ids",
    )

    def flush_caches(self):
        """forget every cached permission so it is recomputed on the next call"""
        for attribute in self._CACHED:
            self.__dict__.pop(attribute, None)
        self.__dict__.pop("_visible_bugs_cache", None)

    def flush_visible_bug(self, bug_id):
        self.__dict__.get("_visible_bugs_cache", {}).pop(bug_id, None)

    # group membership

    def direct_group_membership(self):
        """groups the user is a member of without the inheritance"""
        return Group.objects.filter(
            user_maps__profile=self, user_maps__isbless=False
        ).distinct()

    @cached_property
    def group_ids(self):
        """
        ids of all the groups the user is a member of
        directly or by the inheritance through other groups
        """
        direct = UserGroupMap.objects.filter(profile=self, isbless=False).values_list(
            "group_id", flat=True
        )
        return frozenset(Group.objects.flatten_group_membership(set(direct)))

    @cached_property
    def group_names(self):
        return frozenset(
            Group.objects.filter(pk__in=self.group_ids).values_list("name", flat=True)
        )

    def groups(self):
        return Group.objects.filter(pk__in=self.group_ids)

    def in_group(self, group_name, product_id=None):
        """
        check the group membership by the group name

        the per-product privileges may be also granted for
        a single product through the group control map
        """
        if group_name in self.group_names:
            return True
        if product_id and group_name in PER_PRODUCT_PRIVILEGES:
            return GroupControlMap.objects.filter(
                product_id=product_id,
                group_id__in=self.group_ids,
                **{group_name: True},
            ).exists()
        return False

    def in_group_id(self, group_id):
        return group_id in self.group_ids

    @cached_property
    def bless_group_ids(self):
        """ids of the groups the user may add other users to"""
        if self.in_group(EDITUSERS_GROUP):
            return frozenset(Group.objects.values_list("pk", flat=True))

        direct = UserGroupMap.objects.filter(profile=self, isbless=True).values_list(
            "group_id", flat=True
        )
        inherited = GroupGroupMap.objects.filter(
            member_id__in=self.group_ids, grant_type=GROUP_BLESS
        ).values_list("grantor_id", flat=True)
        blessable = set(direct) | set(inherited)
        if settings.USEVISIBILITYGROUPS:
            blessable &= set(self.visible_groups_inherited())
        return frozenset(blessable)

    def bless_groups(self):
        return Group.objects.filter(pk__in=self.bless_group_ids)

    def can_bless(self, group_id=None):
        if group_id is None:
            return bool(self.bless_group_ids)
        return group_id in self.bless_group_ids

    @cached_property
    def _visible_groups_direct(self):
        if not settings.USEVISIBILITYGROUPS:
            # all groups are visible
            return sorted(Group.objects.values_list("pk", flat=True))
        return sorted(
            set(
                GroupGroupMap.objects.filter(
                    member_id__in=self.group_ids, grant_type=GROUP_VISIBLE
                ).values_list("grantor_id", flat=True)
            )
        )

    def visible_groups_direct(self):
        """ids of the groups whose members the user can see"""
        return self._visible_groups_direct

    @cached_property
    def _visible_groups_inherited(self):
        return Group.objects.flatten_group_membership(self._visible_groups_direct)

    def visible_groups_inherited(self):
        return self._visible_groups_inherited

    def can_see_user(self, other):
        """
        every user is visible unless the visibility groups are enabled
        in which case the other user must be a member of a visible group
        """
        if not settings.USEVISIBILITYGROUPS:
            return True
        visible = self.visible_groups_inherited()
        if not visible:
            return False
        return UserGroupMap.objects.filter(
            profile=other, isbless=False, group_id__in=visible
        ).exists()

    def derive_regexp_groups(self):
        """
        synchronize the group memberships granted
        by the group regexps with the current login
        """
        present = set(
            UserGroupMap.objects.filter(
                profile=self, isbless=False, grant_type=GRANT_REGEXP
            ).values_list("group_id", flat=True)
        )
        for group in Group.objects.all():
            matches = bool(group.userregexp) and bool(
                re.search(group.userregexp, self.login, flags=re.IGNORECASE)
            )
            if matches and group.pk not in present:
                UserGroupMap.objects.create(
                    profile=self, group=group, isbless=False, grant_type=GRANT_REGEXP
                )
            elif not matches and group.pk in present:
                UserGroupMap.objects.filter(
                    profile=self, group=group, isbless=False, grant_type=GRANT_REGEXP
                ).delete()
        self.flush_caches()

    # roles

    @cached_property
    def is_insider(self):
        return bool(settings.INSIDERGROUP) and self.in_group(settings.INSIDERGROUP)

    @cached_property
    def is_timetracker(self):
        return bool(settings.TIMETRACKINGGROUP) and self.in_group(
            settings.TIMETRACKINGGROUP
        )

    @cached_property
    def is_global_watcher(self):
        return self.login in split_list(settings.GLOBALWATCHERS)

    # bugs

    def visible_bugs(self, bugs):
        """
        ids of the given bugs or bug ids the user can see

        the visibility is cached per profile instance
        """
        from .bug import Bug

        bug_ids = [bug if isinstance(bug, int) else bug.pk for bug in bugs]
        cache = self.__dict__.setdefault("_visible_bugs_cache", {})
        unchecked = [bug_id for bug_id in bug_ids if bug_id not in cache]
        if unchecked:
            visible = set(
                Bug.objects.filter(pk__in=unchecked)
                .visible_to(self)
                .values_list("pk", flat=True)
            )
            for bug_id in unchecked:
                cache[bug_id] = bug_id in visible
        return [bug_id for bug_id in bug_ids if cache[bug_id]]

    def can_see_bug(self, bug):
        return bool(self.visible_bugs([bug]))

    # products

    @cached_property
    def _selectable_product_ids(self):
        missing_mandatory = GroupControlMap.objects.filter(
            product=OuterRef("pk"), membercontrol=CONTROLMAPMANDATORY
        ).exclude(group_id__in=self.group_ids)
        return frozenset(
            Product.objects.exclude(Exists(missing_mandatory)).values_list(
                "pk", flat=True
            )
        )

    def get_selectable_products(self):
        """products the user can search and see the bugs of"""
        return Product.objects.filter(pk__in=self._selectable_product_ids)

    def can_see_product(self, product):
        return product.pk in self._selectable_product_ids

    @cached_property
    def _enterable_product_ids(self):
        missing_entry = GroupControlMap.objects.filter(
            product=OuterRef("pk"), entry=True
        ).exclude(group_id__in=self.group_ids)
        return frozenset(
            Product.objects.filter(is_active=True)
            .exclude(Exists(missing_entry))
            .filter(components__isnull=False, versions__isnull=False)
            .values_list("pk", flat=True)
        )

    def get_enterable_products(self):
        """active products with components and versions the user can file bugs into"""
        return Product.objects.filter(pk__in=self._enterable_product_ids)

    def get_accessible_products(self):
        return Product.objects.filter(
            pk__in=self._selectable_product_ids | self._enterable_product_ids
        )

    def can_access_product(self, product):
        return product.pk in (self._selectable_product_ids | self._enterable_product_ids)

    def can_enter_product(self, product, throw=False):
        """
        check that the user can file bugs into the product

        with throw the reason of the denial is raised
        """
        if product is None:
            if throw:
                raise NoProducts("No product was specified.")
            return False
        if product.pk in self._enterable_product_ids:
            return True
        if not throw:
            return False

        if not product.user_has_access(self):
            raise ProductAccessDenied(
                f"You are not allowed to enter bugs into the {product.name} product."
            )
        if not product.is_active:
            raise ProductDisabled(f"The {product.name} product is closed for new bugs.")
        if not product.components.exists():
            raise MissingComponent(f"The {product.name} product has no components.")
        if not product.versions.exists():
            raise MissingVersion(f"The {product.name} product has no versions.")
        raise ProductAccessDenied(
            f"You are not allowed to enter bugs into the {product.name} product."
        )

    def can_edit_product(self, product_id):
        """no group required to edit the bugs of the product is missing"""
        return not (
            GroupControlMap.objects.filter(product_id=product_id, canedit=True)
            .exclude(group_id__in=self.group_ids)
            .exists()
        )

    def get_products_by_permission(self, privilege):
        """selectable products the user holds the per-product privilege in"""
        if privilege not in PER_PRODUCT_PRIVILEGES:
            return Product.objects.none()
        product_ids = GroupControlMap.objects.filter(
            group_id__in=self.group_ids, **{privilege: True}
        ).values_list("product_id", flat=True)
        return self.get_selectable_products().filter(pk__in=product_ids)

    def check_can_admin_product(self, product):
        from ..exceptions import AccessDenied

        if not (
            self.in_group("editcomponents", product.pk)
            and self.can_see_product(product)
        ):
            raise AccessDenied(f"You are not allowed to administer {product.name}.")
        return product

    def product_responsibilities(self):
        """components the user is the default assignee or QA contact of"""
        from .product import Component

        return (
            Component.objects.filter(Q(initialowner=self) | Q(initialqacontact=self))
            .select_related("product")
            .order_by("product__name", "name")
        )

    # flags

    def can_set_flag(self, flag_type):
        return not flag_type.grant_group_id or self.in_group_id(
            flag_type.grant_group_id
        )

    def can_request_flag(self, flag_type):
        return (
            self.can_set_flag(flag_type)
            or not flag_type.request_group_id
            or self.in_group_id(flag_type.request_group_id)
        )

    # mail

    def create_default_email_settings(self):
        """
        enable all the mail for the new user except the own changes
        and the CC list additions where the user is not the reporter
        """
        settings_rows = [
            EmailSetting(profile=self, relationship=relationship, event=event)
            for relationship in RELATIONSHIPS
            for event in POS_EVENTS + NEG_EVENTS
            if event != EVT_CHANGED_BY_ME
            and not (event == EVT_CC and relationship != REL_REPORTER)
        ]
        settings_rows.extend(
            EmailSetting(profile=self, relationship=REL_ANY, event=event)
            for event in GLOBAL_EVENTS
        )
        EmailSetting.objects.bulk_create(settings_rows)

    def wants_mail(self, events, relationship=None):
        """whether the user wants the mail about any of the events"""
        if not events:
            return False
        if relationship is None:
            relationship = REL_ANY
        if relationship == REL_GLOBAL_WATCHER:
            return True
        return self.email_settings.filter(
            relationship=relationship, event__in=list(events)
        ).exists()

    # login security

    def account_ip_login_failures(self, ip_addr):
        since = timezone.now() - timedelta(minutes=LOGIN_LOCKOUT_INTERVAL)
        return self.login_failures.filter(
            ip_addr=ip_addr, login_time__gt=since
        ).order_by("login_time")

    def account_is_locked_out(self, ip_addr):
        return self.account_ip_login_failures(ip_addr).count() >= MAX_LOGIN_ATTEMPTS

    def note_login_failure(self, ip_addr):
        LoginFailure.objects.create(profile=self, ip_addr=ip_addr)

    def clear_login_failures(self, ip_addr):
        self.login_failures.filter(ip_addr=ip_addr).delete()


class EmailSetting(models.Model):
    """the user wants the mail about the event in the relationship"""

    profile = models.ForeignKey(
        Profile, on_delete=models.CASCADE, related_name="email_settings"
    )
    relationship = models.IntegerField()
    event = models.IntegerField()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["profile", "relationship", "event"],
                name="unique_email_setting",
            ),
        ]


class Watch(models.Model):
    """the watcher receives the bug mail of the watched user"""

    watcher = models.ForeignKey(
        Profile, on_delete=models.CASCADE, related_name="watching"
    )
    watched = models.ForeignKey(
        Profile, on_delete=models.CASCADE, related_name="watched_by"
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["watcher", "watched"], name="unique_watch"
            ),
        ]


class LoginFailure(models.Model):
    profile = models.ForeignKey(
        Profile, on_delete=models.CASCADE, related_name="login_failures"
    )
    ip_addr = models.CharField(max_length=40)
    login_time = models.DateTimeField(default=timezone.now)
