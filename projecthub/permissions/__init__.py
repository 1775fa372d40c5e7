"""Permission matrix and effective role resolution."""

from .matrix import ROLE_PERMISSIONS, ALL_CAPABILITIES, has_permission, is_pm_or_pc, get_permissions
from .resolver import EffectiveRoleResolver, effective_role, resolve_effective_role

__all__ = [
    "ROLE_PERMISSIONS",
    "ALL_CAPABILITIES",
    "has_permission",
    "is_pm_or_pc",
    "get_permissions",
    "EffectiveRoleResolver",
    "effective_role",
    "resolve_effective_role",
]
