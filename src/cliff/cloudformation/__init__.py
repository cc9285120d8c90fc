"""
CloudFormation change set utilities.
"""

from .changeset import (
    CHANGE_SET_NAME,
    ChangeSetHandle,
    ChangeSetLifecycle,
    ChangeSetRequest,
    StackDiff,
    diff_stack,
)
from .errors import CliffError, classify
from .render import ChangeRecord, ChangeSetResult, render_changes, render_result
from .retry import BackoffRetrier, RetryPolicy

__all__ = [
    "CHANGE_SET_NAME",
    "BackoffRetrier",
    "ChangeRecord",
    "ChangeSetHandle",
    "ChangeSetLifecycle",
    "ChangeSetRequest",
    "ChangeSetResult",
    "CliffError",
    "RetryPolicy",
    "StackDiff",
    "classify",
    "diff_stack",
    "render_changes",
    "render_result",
]
