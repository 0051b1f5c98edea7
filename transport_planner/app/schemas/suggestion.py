"""
Suggestion schemas and tuning parameters.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from typing import Optional, List, Dict
from transport_planner.app.models.analysis_enums import SuggestionStatus


class SuggestionSettings(BaseModel):
    """
    Tuning for the consolidation scorer.

    Weights must each be within [0, 1] and sum to 1.
    """
    min_gap_minutes: float = Field(30, ge=0)
    max_gap_minutes: float = Field(240, gt=0)
    max_distance_km: float = Field(50, gt=0)
    distance_weight: float = Field(0.4, ge=0, le=1)
    time_weight: float = Field(0.6, ge=0, le=1)
    traffic_factor: float = Field(1.2, ge=1)
    efficiency_threshold: float = Field(0.7, ge=0, le=1)
    max_suggestions_per_route: int = Field(5, ge=1)
    fuel_cost_per_km: float = Field(8.5, ge=0)
    driver_hourly_rate: float = Field(150, ge=0)
    average_speed_kmh: float = Field(40, gt=0)

    @model_validator(mode="after")
    def check_consistency(self):
        if abs(self.distance_weight + self.time_weight - 1.0) > 1e-6:
            raise ValueError("distance_weight and time_weight must sum to 1")
        if self.min_gap_minutes > self.max_gap_minutes:
            raise ValueError("min_gap_minutes must not exceed max_gap_minutes")
        return self


class SuggestionConfigUpdate(BaseModel):
    """Partial update; the merged result is validated as a whole."""
    values: Dict[str, float]


class SuggestionResponse(BaseModel):
    id: int
    from_route_id: int
    to_route_id: int
    suggestion_date: date
    from_occurrence_id: Optional[str]
    to_occurrence_id: Optional[str]
    gap_minutes: int
    distance_km: float
    travel_time_minutes: Optional[int]
    efficiency_score: float
    cost_savings_estimate: Optional[float]
    status: SuggestionStatus
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class SuggestionDecision(BaseModel):
    status: SuggestionStatus
    notes: Optional[str] = None


class SuggestionListResponse(BaseModel):
    suggestion_date: date
    suggestions: List[SuggestionResponse]
    total: int
