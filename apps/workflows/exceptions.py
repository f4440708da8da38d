"""
Workflows exceptions
"""


class WorkflowsException(Exception):
    """base exception class for Workflows specific exceptions"""


class MissingStateException(WorkflowsException):
    """exception for handling a non-registered status"""


class MissingWorkflowException(WorkflowsException):
    """exception for handling no registered workflow"""


class WorkflowDefinitionError(WorkflowsException):
    """exception class for workflow definitions errors"""
