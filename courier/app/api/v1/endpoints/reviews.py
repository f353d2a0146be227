"""
Review API Endpoints.

Customers review the agent who delivered their parcel. Each accepted review
updates the agent's rating aggregate.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.db.session import get_db
from courier.app.models.enums import UserRole
from courier.app.schemas.review import ReviewCreate, ReviewResponse
from courier.app.core.guards import require_role
from courier.app.domain.rating.rating_aggregator import RatingAggregator
from courier.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def submit_review(
    review_data: ReviewCreate,
    current_user: dict = Depends(require_role([UserRole.CUSTOMER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit a review for a delivered parcel (Customer only).

    The reviewer is the authenticated user; one review per parcel and reviewer.
    """
    review = await RatingAggregator.submit_review(
        db,
        parcel_id=review_data.parcel_id,
        agent_id=review_data.agent_id,
        reviewer_id=current_user["user_id"],
        rating=review_data.rating,
        text=review_data.text
    )

    response = ReviewResponse.model_validate(review)

    await log_event(
        db=db,
        action=AuditAction.REVIEW_SUBMITTED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=review.parcel_id,
        metadata={"review_id": review.id, "agent_id": review.agent_id, "rating": review.rating}
    )

    return response
