"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from courier.app.api.v1.endpoints import parcels, assignments, reviews, agents

router = APIRouter()

# Parcel booking, status transitions and payment
router.include_router(parcels.router)

# Admin assignment of parcels to delivery agents
router.include_router(assignments.router)

# Reviews and the public agent ranking
router.include_router(reviews.router)
router.include_router(agents.router)
