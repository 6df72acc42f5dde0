"""
Endpoints for a signed-in user's own reviews.
"""

from fastapi import APIRouter, Depends, status

from app.api.deps import CurrentUser, get_backend_dep, get_current_user
from app.core.logging_config import get_logger
from app.services import reviews as review_service
from app.services.backend import Backend

logger = get_logger(__name__)

router = APIRouter()


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    backend: Backend = Depends(get_backend_dep),
) -> None:
    await review_service.delete_own_review(backend, review_id, current_user.id)
    logger.info("review_deleted", review_id=review_id, by=current_user.id)
