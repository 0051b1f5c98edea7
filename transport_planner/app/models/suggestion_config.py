"""
Suggestion tuning parameters stored in the database.

Rows override the defaults from settings so the engine can be retuned
without a redeploy.
"""

from sqlalchemy import Column, Integer, String, Float, Text, Boolean, DateTime
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base


class SuggestionConfig(Base):
    __tablename__ = "suggestion_config"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    config_key = Column(String(100), unique=True, nullable=False, index=True)
    config_value = Column(Float, nullable=False)
    min_value = Column(Float, nullable=True)
    max_value = Column(Float, nullable=True)
    unit = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String(50), default="general", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<SuggestionConfig({self.config_key}={self.config_value})>"
