"""Services for the Billing Decision Engine.

Services implement business logic:
- BillingDecisionTreeService: encounter to claim line (app.services.billing)
"""

from app.services.billing import BillingDecisionTreeService, InMemoryReferenceData, ReferenceDataInterface

__all__ = [
    "BillingDecisionTreeService",
    "InMemoryReferenceData",
    "ReferenceDataInterface",
]
