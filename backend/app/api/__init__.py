"""API routers for the Billing Decision Engine."""

from app.api.billing import router as billing_router

__all__ = [
    "billing_router",
]
