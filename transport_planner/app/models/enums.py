"""
User roles enumeration.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Manages users, tuning, audit trail and batch operations
        PLANNER: Creates and edits schedules, answers support offers
        VIEWER: Read-only access to schedules and own alerts
    """
    ADMIN = "ADMIN"
    PLANNER = "PLANNER"
    VIEWER = "VIEWER"
