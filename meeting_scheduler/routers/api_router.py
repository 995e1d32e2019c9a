from fastapi import APIRouter
from meeting_scheduler.routers import meetings, availability, notifications

# Routers are aggregated here; main.py only imports this hub.
api_router = APIRouter()

api_router.include_router(meetings.router, tags=["Meetings"])
api_router.include_router(availability.router, tags=["Availability"])
api_router.include_router(notifications.router, tags=["Notifications"])
