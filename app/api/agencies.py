"""
Public agency directory endpoints and agency reviews.
"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, Query, status

from app.api.deps import CurrentUser, get_backend_dep, get_current_user
from app.schemas import AgencyOut, AgencyPage, ReviewCreate, ReviewList, ReviewOut
from app.services import agencies as agency_service
from app.services import reviews as review_service
from app.services.backend import Backend

router = APIRouter()


@router.get("/", response_model=AgencyPage)
async def read_agencies(
    backend: Backend = Depends(get_backend_dep),
    search: Optional[str] = Query(default=None, description="Matches name, location or description"),
    location: Optional[str] = None,
    min_trust_score: Optional[float] = Query(default=None, ge=0, le=100),
    max_price: Optional[float] = Query(default=None, ge=0),
    verified_only: bool = False,
    sort: str = Query(default="name", pattern="^(name|trust_score|price|created_at)$"),
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=agency_service.PUBLIC_PAGE_SIZE, ge=1, le=agency_service.MAX_PAGE_SIZE),
) -> Any:
    """
    Approved agencies, searched and filtered, one page at a time.
    """
    filters = agency_service.AgencyFilters(
        search=search,
        location=location,
        min_trust_score=min_trust_score,
        max_price=max_price,
        verified_only=verified_only,
    )
    return await agency_service.list_public_agencies(
        backend, filters, sort=sort, order=order, page=page, page_size=page_size
    )


@router.get("/{agency_id}", response_model=AgencyOut)
async def read_agency(agency_id: str, backend: Backend = Depends(get_backend_dep)) -> Any:
    return await agency_service.get_public_agency(backend, agency_id)


@router.get("/{agency_id}/reviews", response_model=ReviewList)
async def read_agency_reviews(agency_id: str, backend: Backend = Depends(get_backend_dep)) -> Any:
    """Approved reviews, newest first, and their average rating."""
    return await review_service.list_agency_reviews(backend, agency_id)


@router.post("/{agency_id}/reviews", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def create_agency_review(
    agency_id: str,
    body: ReviewCreate,
    current_user: CurrentUser = Depends(get_current_user),
    backend: Backend = Depends(get_backend_dep),
) -> Any:
    return await review_service.submit_review(backend, agency_id, current_user.id, body.rating, body.content)
