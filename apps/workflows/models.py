"""
Workflows model definitions
"""

from .exceptions import MissingStateException, WorkflowDefinitionError


class Status:
    """
    bug status

    has name and sortkey and is either open or closed
    """

    def __init__(self, status_desc):
        self.name = status_desc["name"]
        self.is_open = bool(status_desc["is_open"])
        self.sortkey = int(status_desc.get("sortkey", 0))

    def __eq__(self, other):
        return isinstance(other, Status) and self.name == other.name

    def __hash__(self):
        return hash(self.name)

    def __repr__(self):
        return f"Status({self.name})"


class Transition:
    """
    allowed change of the bug status

    the old status of the initial transitions is None
    """

    def __init__(self, old, transition_desc):
        self.old = old
        self.new = transition_desc["to"]
        self.require_comment = bool(transition_desc.get("require_comment", False))


class Workflow:
    """
    workflow

    has name and description and priority which must be unique among all existing workflows
    has also a list of statuses - order matters - and the transitions between them

    the transitions with no old status are the ones a new bug may be filed with
    """

    def __init__(self, workflow_desc):
        self.name = workflow_desc["name"]
        self.description = workflow_desc["description"]
        self.priority = int(workflow_desc["priority"])
        self.statuses = sorted(
            (Status(status_desc) for status_desc in workflow_desc["statuses"]),
            key=lambda status: (status.sortkey, status.name),
        )
        self.duplicate_or_move_status = workflow_desc["duplicate_or_move_status"]

        self.transitions = [
            Transition(None, transition_desc)
            for transition_desc in workflow_desc["initial"]
        ]
        for old, transition_descs in workflow_desc["transitions"].items():
            self.transitions.extend(
                Transition(old, transition_desc) for transition_desc in transition_descs
            )

        known = {status.name for status in self.statuses}
        for transition in self.transitions:
            if transition.new not in known or (
                transition.old is not None and transition.old not in known
            ):
                raise ValueError(
                    f"Transition {transition.old} -> {transition.new} "
                    "refers to an undefined status"
                )
        if self.duplicate_or_move_status not in known:
            raise ValueError(
                f"Undefined duplicate status {self.duplicate_or_move_status}"
            )

    def __eq__(self, other):
        return self.priority == other.priority

    def __lt__(self, other):
        return self.priority < other.priority

    def status(self, name):
        """status by its name"""
        for status in self.statuses:
            if status.name == name:
                return status
        raise MissingStateException(
            f"Status ({name}) was not found in workflow ({self.name})."
        )

    def transition(self, old, new):
        """transition between the given statuses or None if not allowed"""
        for transition in self.transitions:
            if transition.old == old and transition.new == new:
                return transition
        return None

    def can_change_to(self, old=None):
        """
        statuses the given status may be changed to in the workflow order

        no status means the statuses a new bug may be filed with
        """
        targets = {
            transition.new for transition in self.transitions if transition.old == old
        }
        return [status for status in self.statuses if status.name in targets]


def check_workflow(workflow):
    """make sure the workflow allows to file a bug"""
    if not workflow.can_change_to(None):
        raise WorkflowDefinitionError(
            f"Workflow {workflow.name} defines no initial status"
        )
    return workflow
