"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from gigflow.api.routes import admin, contracts, negotiations

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(negotiations.router)
api_router.include_router(contracts.booking_router)
api_router.include_router(admin.router)
api_router.include_router(contracts.router)
