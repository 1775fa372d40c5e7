"""
Task status state machine.

The transition table below is the complete contract: any (from, to) pair
not listed is rejected, and listed pairs are only open to the roles named.
"""

from typing import Dict, FrozenSet, List

from ..models.results import TransitionCheck
from ..models.roles import ProjectRole, format_role, parse_role
from ..models.task import TaskStatus, format_status, parse_status

PM = ProjectRole.PROJECT_MANAGER
PC = ProjectRole.PROJECT_COORDINATOR
TM = ProjectRole.TEAM_MEMBER

ALL_ROLES = frozenset({PM, PC, TM})
MANAGERS = frozenset({PM, PC})


TASK_TRANSITIONS: Dict[TaskStatus, Dict[TaskStatus, FrozenSet[ProjectRole]]] = {
    TaskStatus.TODO: {
        TaskStatus.IN_PROGRESS: ALL_ROLES,
    },
    TaskStatus.IN_PROGRESS: {
        TaskStatus.PENDING_REVIEW: ALL_ROLES,   # Submit for review
        TaskStatus.TODO: MANAGERS,
    },
    TaskStatus.PENDING_REVIEW: {
        TaskStatus.DONE: MANAGERS,              # Approve
        TaskStatus.IN_PROGRESS: MANAGERS,       # Send back
    },
    TaskStatus.DONE: {
        TaskStatus.IN_PROGRESS: frozenset({PM}),  # Reopen
    },
    TaskStatus.BLOCKED: {
        TaskStatus.TODO: MANAGERS,
        TaskStatus.IN_PROGRESS: MANAGERS,
    },
}

# Display order used when listing roles in messages
_ROLE_ORDER = (PM, PC, TM)


def _describe_roles(roles) -> str:
    return " or ".join(format_role(r) for r in _ROLE_ORDER if r in roles)


def validate_transition(from_status, to_status, role) -> TransitionCheck:
    """
    Check whether ``role`` may move a task from ``from_status`` to ``to_status``.

    Returns TransitionCheck(allowed, reason). Denials name either the
    undefined status pair or the roles that would be permitted.
    """
    source = parse_status(from_status)
    target = parse_status(to_status)

    if source is None or source not in TASK_TRANSITIONS:
        return TransitionCheck.deny(f'Unknown source status: "{from_status}"')

    allowed_roles = TASK_TRANSITIONS[source].get(target) if target else None
    if allowed_roles is None:
        return TransitionCheck.deny(
            f'Cannot transition a task from "{format_status(source)}" to "{format_status(to_status)}"'
        )

    actor_role = parse_role(role)
    if actor_role not in allowed_roles:
        return TransitionCheck.deny(
            f"Your role ({format_role(role)}) cannot perform this action. "
            f"Required: {_describe_roles(allowed_roles)}"
        )

    return TransitionCheck.allow()


def get_available_transitions(from_status, role) -> List[TaskStatus]:
    """Statuses ``role`` may move a task to from ``from_status``."""
    source = parse_status(from_status)
    actor_role = parse_role(role)
    if source is None or actor_role is None:
        return []

    return [
        target
        for target, roles in TASK_TRANSITIONS.get(source, {}).items()
        if actor_role in roles
    ]


def get_checkbox_action(role) -> TaskStatus:
    """
    What ticking a task's completion box means for ``role``.

    Managers complete directly; team members submit for approval. The result
    must still go through ``validate_transition``.
    """
    if parse_role(role) in MANAGERS:
        return TaskStatus.DONE
    return TaskStatus.PENDING_REVIEW
