import pytest
from django.core import mail
from rest_framework.test import APIClient

from bugdb.constants import BUGDB_API_VERSION
from bugdb.tests.factories import TEST_PASSWORD, ProfileFactory


@pytest.fixture(autouse=True)
def use_debug(settings):
    """Enforce DEBUG=True in all tests because pytest hardcodes it to False

    See: https://github.com/pytest-dev/pytest-django/pull/463
    """
    settings.DEBUG = True


@pytest.fixture(autouse=True)
def enable_db_access_for_all_tests(db):
    pass


@pytest.fixture(autouse=True)
def stats_data_dir(settings, tmp_path, monkeypatch):
    """the statistics are never written outside the test directory"""
    settings.DATA_DIR = str(tmp_path)
    monkeypatch.setenv("STATS_COLLECTOR_DATA_DIR", str(tmp_path))


class TokenClient(APIClient):
    def login(self, username, password):
        r = self.post(
            f"/bugdb/api/{BUGDB_API_VERSION}/users/login",
            {"login": username, "password": password},
            format="json",
        )
        self.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['access']}")


@pytest.fixture
def client():
    return TokenClient()


@pytest.fixture
def test_password():
    return TEST_PASSWORD


@pytest.fixture
def test_user():
    return ProfileFactory(user__username="tester@example.com", realname="Tester")


@pytest.fixture
def test_scheme_host():
    return "http://bugdb-service:8000/bugdb"


@pytest.fixture
def api_version():
    return BUGDB_API_VERSION


@pytest.fixture
def test_api_uri(test_scheme_host, api_version):
    return f"{test_scheme_host}/api/{api_version}"


@pytest.fixture
def auth_client(test_user, test_password):
    """
    client logged in as the given profile

    the test user is used when no profile is given
    """

    def clientify(as_user=None):
        client = TokenClient()
        client.login((as_user or test_user).login, test_password)
        return client

    return clientify


@pytest.fixture
def outbox():
    """the mails sent during the test"""
    mail.outbox = []
    return mail.outbox
