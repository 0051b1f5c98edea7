"""
Schedule-related enumerations.
"""

import enum


class ScheduleType(str, enum.Enum):
    """SINGLE templates produce one occurrence on their start date."""
    SINGLE = "Single"
    RECURRING = "Recurring"


class TemplateStatus(str, enum.Enum):
    """
    Route template lifecycle.

    PENDING: Drafted, not yet materialized
    CONFIRMED: Live
    CHANGED: Live, edited after confirmation
    CANCELLED: Terminal; templates are never hard-deleted
    """
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CHANGED = "Changed"
    CANCELLED = "Cancelled"


class OccurrenceStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# Only these template statuses produce occurrences
MATERIALIZED_TEMPLATE_STATUSES = (TemplateStatus.CONFIRMED, TemplateStatus.CHANGED)

# Occurrences in these statuses still hold their driver and vehicle
BOOKED_OCCURRENCE_STATUSES = (OccurrenceStatus.SCHEDULED, OccurrenceStatus.CONFIRMED)
