import pytest

from bugdb.constants import CANCONFIRM_GROUP, EDITBUGS_GROUP, EDITUSERS_GROUP
from bugdb.tests.factories import (
    ComponentFactory,
    GroupFactory,
    ProductFactory,
    ProfileFactory,
    UserGroupMapFactory,
    VersionFactory,
)


@pytest.fixture
def add_to_group():
    """
    make the profile a direct member of the named group
    creating the group when it does not exist yet
    """

    def add(profile, group_name, **kwargs):
        group = GroupFactory(name=group_name, **kwargs)
        UserGroupMapFactory(profile=profile, group=group)
        profile.flush_caches()
        return group

    return add


@pytest.fixture
def product():
    product = ProductFactory(name="TestProduct", votesperuser=10, maxvotesperbug=5)
    ComponentFactory(
        product=product,
        name="TestComponent",
        initialowner=ProfileFactory(user__username="owner@example.com"),
    )
    VersionFactory(product=product, value="unspecified")
    VersionFactory(product=product, value="1.0")
    return product


@pytest.fixture
def component(product):
    return product.components.get(name="TestComponent")


@pytest.fixture
def editbugs_user(add_to_group):
    profile = ProfileFactory(user__username="editor@example.com", realname="Editor")
    add_to_group(profile, EDITBUGS_GROUP, isbuggroup=False)
    return profile


@pytest.fixture
def canconfirm_user(add_to_group):
    profile = ProfileFactory(user__username="confirmer@example.com")
    add_to_group(profile, CANCONFIRM_GROUP, isbuggroup=False)
    return profile


@pytest.fixture
def editusers_user(add_to_group):
    profile = ProfileFactory(user__username="admin@example.com")
    add_to_group(profile, EDITUSERS_GROUP, isbuggroup=False)
    return profile


@pytest.fixture
def insider(add_to_group, settings):
    profile = ProfileFactory(user__username="insider@example.com")
    add_to_group(profile, settings.INSIDERGROUP, isbuggroup=False)
    return profile


@pytest.fixture
def timetracker(add_to_group, settings):
    profile = ProfileFactory(user__username="timetracker@example.com")
    add_to_group(profile, settings.TIMETRACKINGGROUP, isbuggroup=False)
    return profile
