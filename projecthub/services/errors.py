"""
Business failure taxonomy.

Services raise these internally and convert them to
``OperationResult.failure`` at their public boundary. Callers never see
them as exceptions.
"""

from ..models.results import ErrorKind


class WorkflowError(Exception):
    """Base class for expected business failures."""
    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDeniedError(WorkflowError):
    """Actor lacks the capability, or a role-specific restriction applies."""
    kind = ErrorKind.PERMISSION_DENIED


class InvalidTransitionError(WorkflowError):
    """Task status change is not in the table or not open to the actor's role."""
    kind = ErrorKind.INVALID_TRANSITION


class NotFoundError(WorkflowError):
    """Member, task or user does not exist."""
    kind = ErrorKind.NOT_FOUND


class InvariantViolationError(WorkflowError):
    """Change would break a structural rule such as the last-PM rule."""
    kind = ErrorKind.INVARIANT_VIOLATION


class AlreadyExistsError(WorkflowError):
    """Duplicate membership."""
    kind = ErrorKind.ALREADY_EXISTS


class UnauthenticatedError(WorkflowError):
    """No resolvable actor."""
    kind = ErrorKind.UNAUTHENTICATED
