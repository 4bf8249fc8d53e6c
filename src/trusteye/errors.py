from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION_FAILURE = "validation_failure"
    APPROVAL_PENDING = "approval_pending"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"
    AMBIGUOUS_COMMAND = "ambiguous_command"
    ILLEGAL_TRANSITION = "illegal_transition"


class CampaignError(Exception):
    """Base class for lifecycle failures surfaced to the operator as conversation messages."""

    kind: ErrorKind = ErrorKind.ILLEGAL_TRANSITION

    def __init__(self, message: str, *, operation: str = "", stage: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.stage = stage


class IllegalTransition(CampaignError):
    """Raised when an operation is not legal from the campaign's current stage.

    The campaign is left untouched.
    """

    kind = ErrorKind.ILLEGAL_TRANSITION


class ApprovalPending(CampaignError):
    """Raised when an operation must wait for the human approval gate."""

    kind = ErrorKind.APPROVAL_PENDING


class CollaboratorUnavailable(CampaignError):
    """Raised when an external collaborator call fails.

    Wraps the underlying exception as ``__cause__``.
    """

    kind = ErrorKind.COLLABORATOR_UNAVAILABLE

    def __init__(self, message: str, *, collaborator: str, operation: str = "", stage: str = "") -> None:
        super().__init__(message, operation=operation, stage=stage)
        self.collaborator = collaborator
