"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from qmuter.app.api.v1.endpoints import live_tracking, notifications

router = APIRouter()

# Live trip tracking and proximity notifications
router.include_router(live_tracking.router)

# Notification inbox
router.include_router(notifications.router)
