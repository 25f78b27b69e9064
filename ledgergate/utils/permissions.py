"""
LedgerGate - Permissions System

Role-based permissions for statement viewing and period locking.

Locking and unlocking are deliberately separate privilege tiers: the people
who prepare and lock a period are not the people who can reopen it.

Permission Matrix:
==================
| Permission      | Super Admin | Admin | Chief Accountant | Accountant | Viewer |
|-----------------|-------------|-------|------------------|------------|--------|
| view_reports    | X           | X     | X                | X          | X      |
| lock_period     |             | X     | X                |            |        |
| unlock_period   | X           | X     |                  |            |        |
| close_period    | X           |       |                  |            |        |
"""

from enum import Enum
from typing import Set


class UserRole(str, Enum):
    """Roles an acting user may hold."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    CHIEF_ACCOUNTANT = "chief_accountant"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"


# ===========================================
# PERMISSION ENUMS
# ===========================================

class PeriodPermission(str, Enum):
    """Permissions over statements and period locks."""
    VIEW_REPORTS = "view_reports"
    LOCK_PERIOD = "lock_period"
    UNLOCK_PERIOD = "unlock_period"
    CLOSE_PERIOD = "close_period"


# ===========================================
# ROLE-PERMISSION MAPPINGS
# ===========================================

ROLE_PERMISSIONS: dict[UserRole, Set[PeriodPermission]] = {
    UserRole.SUPER_ADMIN: {
        PeriodPermission.VIEW_REPORTS,
        PeriodPermission.UNLOCK_PERIOD,
        PeriodPermission.CLOSE_PERIOD,
    },
    UserRole.ADMIN: {
        PeriodPermission.VIEW_REPORTS,
        PeriodPermission.LOCK_PERIOD,
        PeriodPermission.UNLOCK_PERIOD,
    },
    UserRole.CHIEF_ACCOUNTANT: {
        PeriodPermission.VIEW_REPORTS,
        PeriodPermission.LOCK_PERIOD,
    },
    UserRole.ACCOUNTANT: {
        PeriodPermission.VIEW_REPORTS,
    },
    UserRole.VIEWER: {
        PeriodPermission.VIEW_REPORTS,
    },
}


def get_permissions(role: UserRole) -> Set[PeriodPermission]:
    """Get all permissions for a role."""
    return ROLE_PERMISSIONS.get(role, set())


def has_permission(role: UserRole, permission: PeriodPermission) -> bool:
    """Check if a role has a specific permission."""
    return permission in get_permissions(role)
