"""Version 1 API: workflows, events and health, mounted under /api/v1 by app.main."""

from fastapi import APIRouter

from app.api.v1.endpoints import events, health, workflows

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["workflows"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
