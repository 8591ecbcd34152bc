"""
Main API router that includes all route modules.
"""
from fastapi import APIRouter
from tripboard.api.routes import trips, proposals, expenses, notifications

api_router = APIRouter()

# Include all route modules
api_router.include_router(trips.router)
api_router.include_router(proposals.router)
api_router.include_router(expenses.router)
api_router.include_router(notifications.router)
