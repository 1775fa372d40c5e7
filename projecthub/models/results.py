"""Structured results returned by the workflow services."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .audit import AuditLogEntry
from .roles import ProjectMembership
from .task import TaskSnapshot


class ErrorKind(str, Enum):
    """Failure taxonomy reported back to callers."""
    PERMISSION_DENIED = "permission_denied"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    INVARIANT_VIOLATION = "invariant_violation"
    ALREADY_EXISTS = "already_exists"
    UNAUTHENTICATED = "unauthenticated"
    INFRASTRUCTURE = "infrastructure"


class OperationResult(BaseModel):
    """Outcome of a mutation: success flag plus an actionable message."""
    success: bool
    message: str
    error: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, message: str, **extra) -> "OperationResult":
        """Create a successful result."""
        return cls(success=True, message=message, error=None, **extra)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, **extra) -> "OperationResult":
        """Create a failed result."""
        return cls(success=False, message=message, error=error, **extra)


class TaskUpdateResult(OperationResult):
    task: Optional[TaskSnapshot] = None


class AuditLogResult(OperationResult):
    entries: List[AuditLogEntry] = Field(default_factory=list)


class MemberListResult(OperationResult):
    members: List[ProjectMembership] = Field(default_factory=list)


class TransitionCheck(BaseModel):
    """Result of checking a task status change against the transition table."""
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "TransitionCheck":
        return cls(allowed=True, reason=None)

    @classmethod
    def deny(cls, reason: str) -> "TransitionCheck":
        return cls(allowed=False, reason=reason)
