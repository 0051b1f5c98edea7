"""
Route alert database model.

Per-user notification records produced by conflict detection, suggestions,
reminders and team collaboration.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
import enum


class AlertType(str, enum.Enum):
    REMINDER = "Reminder"
    CONFLICT = "Conflict"
    CHANGE = "Change"
    CANCELLATION = "Cancellation"
    DELAY = "Delay"
    TIME_CROSS_DAY = "TimeCrossDay"
    NOTIFICATION = "Notification"
    OFFER = "Offer"


class AlertSeverity(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class RouteAlert(Base):
    __tablename__ = "route_alerts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Weak links back to the trigger
    template_id = Column(Integer, nullable=True, index=True)
    occurrence_id = Column(String(64), nullable=True)
    route_id = Column(Integer, nullable=True)

    # Schedule date the alert is about; same-date alerts of a type are replaced together
    alert_date = Column(Date, nullable=True, index=True)

    alert_type = Column(Enum(AlertType), nullable=False, index=True)
    severity = Column(Enum(AlertSeverity), default=AlertSeverity.MEDIUM, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    metadata_payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<RouteAlert(id={self.id}, user={self.user_id}, type='{self.alert_type}')>"
