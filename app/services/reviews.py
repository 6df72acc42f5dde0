"""
Agency reviews: submission by signed-in users, the public list, and admin
moderation.

Public readers only ever see approved reviews; the average rating shown on an
agency page is computed from those. Like every other backend call, review
reads and writes go through retryable_query.
"""

from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.errors import BackendError, PERMISSION_DENIED
from app.core.logging_config import get_logger
from app.core.retry import retryable_query
from app.models.review import ReviewStatus
from app.services import agencies as agency_service
from app.services.backend import Backend

logger = get_logger(__name__)

COLLECTION = "reviews"
MIN_RATING = 1
MAX_RATING = 5
MAX_CONTENT_LENGTH = 5000


def clean_review(rating: Optional[int], content: Optional[str]) -> str:
    """Check a submission and return its trimmed text."""
    if rating is None or not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError("Please select a rating")
    text = (content or "").strip()
    if not text:
        raise ValueError("Please write a review")
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValueError(f"Reviews are limited to {MAX_CONTENT_LENGTH} characters")
    return text


def average_rating(rows: List[Dict[str, Any]]) -> Optional[float]:
    """Mean rating rounded to one decimal, None when there are no reviews."""
    if not rows:
        return None
    return round(sum(row["rating"] for row in rows) / len(rows), 1)


async def list_agency_reviews(backend: Backend, agency_id: str) -> Dict[str, Any]:
    """Approved reviews of an approved agency, newest first, with their average."""
    await agency_service.get_public_agency(backend, agency_id)
    rows = await retryable_query(
        lambda: backend.query(
            COLLECTION,
            filters={"agency_id": agency_id, "status": ReviewStatus.APPROVED.value},
            ordering=[("created_at", "desc")],
        )
    )
    return {"items": rows, "total": len(rows), "average_rating": average_rating(rows)}


async def submit_review(
    backend: Backend,
    agency_id: str,
    user_id: str,
    rating: int,
    content: str,
) -> Dict[str, Any]:
    text = clean_review(rating, content)
    await agency_service.get_public_agency(backend, agency_id)

    status = ReviewStatus.PENDING if settings.REVIEWS_REQUIRE_APPROVAL else ReviewStatus.APPROVED
    record = {
        "agency_id": agency_id,
        "user_id": user_id,
        "rating": rating,
        "content": text,
        "status": status.value,
    }
    row = await retryable_query(lambda: backend.insert(COLLECTION, record))
    logger.info("review_submitted", review_id=row["id"], agency_id=agency_id, status=status.value)
    return row


async def delete_own_review(backend: Backend, review_id: str, user_id: str) -> bool:
    """Authors may delete their own reviews; anyone else gets PERMISSION_DENIED."""
    row = await retryable_query(lambda: backend.get(COLLECTION, review_id))
    if row.get("user_id") != user_id:
        raise BackendError("Only the author can delete this review", code=PERMISSION_DENIED)
    return await retryable_query(lambda: backend.delete(COLLECTION, review_id))


async def list_reviews_for_moderation(
    backend: Backend,
    agency_id: Optional[str] = None,
    status: str = "all",
) -> List[Dict[str, Any]]:
    """Reviews in any status for the admin dashboard, newest first."""
    filters: Dict[str, Any] = {}
    if agency_id:
        filters["agency_id"] = agency_id
    if status != "all":
        filters["status"] = status
    return await retryable_query(
        lambda: backend.query(COLLECTION, filters=filters, ordering=[("created_at", "desc")])
    )


async def set_review_status(backend: Backend, review_id: str, status: ReviewStatus) -> Dict[str, Any]:
    return await retryable_query(lambda: backend.update(COLLECTION, review_id, {"status": status.value}))
