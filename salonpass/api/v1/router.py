from fastapi import APIRouter
from salonpass.api.v1.endpoints import subscriptions, webhooks

api_router = APIRouter()

# Include all route modules
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
