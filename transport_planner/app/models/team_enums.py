"""
Team collaboration enumerations (route responsibility, support offers).
"""

import enum


class ResponsibilityRole(str, enum.Enum):
    PRIMARY = "Primary"
    BACKUP = "Backup"
    OBSERVER = "Observer"


class OfferType(str, enum.Enum):
    """
    RESOURCE: Lend a driver and/or vehicle
    TAKEOVER: Run the route on the owner's behalf
    ASSISTANCE: General help, no resource change
    """
    RESOURCE = "Resource"
    TAKEOVER = "Takeover"
    ASSISTANCE = "Assistance"


class OfferPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class OfferStatus(str, enum.Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    EXPIRED = "Expired"
