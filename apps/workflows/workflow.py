"""
Workflows Framework

    this is the heart of this app implementing the logic over the workflow models
    the workflows themselves are defined separately in WORKFLOW_DIR defined in constants
"""
import logging
from os import listdir
from os.path import join

import yaml

from .constants import WORKFLOW_DIR
from .exceptions import MissingWorkflowException, WorkflowDefinitionError
from .helpers import singleton
from .models import Workflow, check_workflow

logger = logging.getLogger(__name__)

UNCONFIRMED = "UNCONFIRMED"


@singleton
class WorkflowFramework:
    """
    workflow operating framework

    loads all available workflows and operates the active one
    which is the workflow with the highest priority
    """

    _workflows = []

    unconfirmed_state = UNCONFIRMED

    @property
    def workflows(self):
        """
        workflows getter

        loads the workflows on the first run
        """
        if not self._workflows:
            self.load_workflows()

        return self._workflows

    def load_workflows(self):
        """workflows loader"""
        for file in sorted(listdir(WORKFLOW_DIR)):
            if not file.endswith(".yml"):
                continue

            try:
                with open(
                    file=join(WORKFLOW_DIR, file), mode="r", encoding="utf8"
                ) as stream:
                    # create and register workflow instance
                    logger.info(f"Processing workflow definition: {file}")
                    self.register_workflow(
                        check_workflow(Workflow(yaml.safe_load(stream)))
                    )

            except (KeyError, ValueError, TypeError) as exception:
                raise WorkflowDefinitionError(
                    f"Invalid workflow definition {file}"
                ) from exception

    def register_workflow(self, workflow):
        """
        workflow registration

        keeps the workflows sorted according to the highest priority
        """
        self._workflows.append(workflow)
        self._workflows.sort(reverse=True)

    @property
    def workflow(self):
        """the active workflow"""
        if not self.workflows:
            raise MissingWorkflowException("No workflow is defined.")
        return self.workflows[0]

    @property
    def statuses(self):
        return self.workflow.statuses

    def status(self, name):
        return self.workflow.status(name)

    def is_open_state(self, name):
        """unknown statuses are considered open"""
        for status in self.statuses:
            if status.name == name:
                return status.is_open
        return True

    def open_states(self):
        return [status.name for status in self.statuses if status.is_open]

    def closed_states(self):
        return [status.name for status in self.statuses if not status.is_open]

    def can_change_to(self, old=None):
        """names of the statuses the old one may be changed to"""
        return [status.name for status in self.workflow.can_change_to(old)]

    def comment_required_on_change_from(self, old, new):
        """whether the change from the old status to the new one requires a comment"""
        if old == new:
            return False
        transition = self.workflow.transition(old, new)
        return transition is not None and transition.require_comment

    def first_open_status_after(self, name=UNCONFIRMED):
        """
        the first status a new bug may be filed with which is not
        the given one - by default skipping the UNCONFIRMED status
        """
        for status in self.can_change_to(None):
            if status != name:
                return status
        return None

    @property
    def duplicate_or_move_status(self):
        return self.workflow.duplicate_or_move_status
