"""
Conflict and suggestion enumerations.
"""

import enum


class ConflictType(str, enum.Enum):
    DRIVER_OVERLAP = "Driver Overlap"
    VEHICLE_OVERLAP = "Vehicle Overlap"
    TIME_CONFLICT = "Time Conflict"


class ConflictSeverity(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ConflictStatus(str, enum.Enum):
    OPEN = "Open"
    RESOLVED = "Resolved"
    IGNORED = "Ignored"


class SuggestionStatus(str, enum.Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
