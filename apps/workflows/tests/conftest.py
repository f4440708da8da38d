import pytest

from apps.workflows.constants import WORKFLOWS_API_VERSION
from apps.workflows.workflow import WorkflowFramework


@pytest.fixture
def test_scheme_host():
    return "http://bugdb-service:8000/workflows"


@pytest.fixture
def api_version():
    return WORKFLOWS_API_VERSION


@pytest.fixture
def test_api_uri(test_scheme_host, api_version):
    return f"{test_scheme_host}/api/{api_version}"


@pytest.fixture(autouse=True)
def clean_workflows():
    """
    clean workflow framework before and after every test

        * before so it is not mixed with some leftovers
        * after so we do not leave any leftovers

    if we do it only before or only after the tests might behave differently
    when run in batch than when run alone
    """
    workflow_framework = WorkflowFramework()
    workflow_framework._workflows = []
    yield  # run test here
    workflow_framework._workflows = []
