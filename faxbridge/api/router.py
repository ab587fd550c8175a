from fastapi import APIRouter

from faxbridge.api.endpoints import webhooks

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])

__all__ = ["api_router"]
