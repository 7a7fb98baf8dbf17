"""
API v1 router setup
All routes are dashboard routes scoped by the X-Business-ID header
"""
from fastapi import APIRouter

from barberbook.api.v1.dashboard import appointments, monthly_plans, loyalty

api_v1_router = APIRouter()

# ============================================================================
# DASHBOARD ROUTES
# ============================================================================
api_v1_router.include_router(
    appointments.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    monthly_plans.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    loyalty.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)
