import pytest

from bugdb.constants import EDITBUGS_GROUP
from bugdb.tests.factories import (
    BugFactory,
    ComponentFactory,
    GroupFactory,
    ProfileFactory,
    UserGroupMapFactory,
)


@pytest.fixture
def changer():
    """user allowed to change any bug"""
    profile = ProfileFactory(user__username="changer@example.com")
    group = GroupFactory(name=EDITBUGS_GROUP, isbuggroup=False)
    UserGroupMapFactory(profile=profile, group=group)
    return profile


@pytest.fixture
def reporter():
    return ProfileFactory(user__username="reporter@example.com", realname="Rep Orter")


@pytest.fixture
def assignee():
    return ProfileFactory(user__username="assignee@example.com")


@pytest.fixture
def bug(reporter, assignee):
    component = ComponentFactory(name="Engine", initialowner=assignee)
    return BugFactory(
        product=component.product,
        component=component,
        reporter=reporter,
        short_desc="engine stalls",
        description="It stops after a minute.",
    )
