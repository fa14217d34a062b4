"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from app.api.routes import booking_events, waitlist

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(booking_events.router)
api_router.include_router(waitlist.router)
