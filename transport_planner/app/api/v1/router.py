"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from transport_planner.app.api.v1.endpoints import (
    fleet, templates, occurrences, conflicts, suggestions,
    alerts, team, audit, admin_ops
)

router = APIRouter()

# Reference data
router.include_router(fleet.router)

# Scheduling
router.include_router(templates.router)
router.include_router(occurrences.router)

# Analysis
router.include_router(conflicts.router)
router.include_router(suggestions.router)

# Alerts and collaboration
router.include_router(alerts.router)
router.include_router(team.responsibility_router)
router.include_router(team.offer_router)

# Admin
router.include_router(audit.router)
router.include_router(admin_ops.router)
