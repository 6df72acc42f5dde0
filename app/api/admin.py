"""
Admin API endpoints: CSV bulk upload of agencies, listing and review
moderation, and agency ownership.
Protected by admin role (from the auth provider's JWT).
"""

from typing import Any, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, status

from app.api.deps import CurrentUser, get_backend_dep, get_current_admin
from app.core.config import settings
from app.core.errors import CsvValidationError
from app.core.logging_config import get_logger
from app.schemas import (
    AgencyOut,
    AgencyPage,
    BulkUploadStarted,
    OwnerUpdate,
    ReviewOut,
    ReviewStatusUpdate,
    StatusUpdate,
    TrustScoreUpdate,
    UploadStatusOut,
    VerifyUpdate,
)
from app.services import agencies as agency_service
from app.services import reviews as review_service
from app.services.backend import Backend
from app.services.bulk_upload import run_upload_job, upload_jobs
from app.services.csv_import import decode_csv_upload, parse_csv, validate_upload

logger = get_logger(__name__)

router = APIRouter()


@router.post("/agencies/bulk-upload", response_model=BulkUploadStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_bulk_upload(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
):
    """
    Upload a CSV of agencies. The file is validated and parsed before anything
    is written; rows are then inserted in the background.

    - Required columns: name, location, description, contact_email
    - Optional columns: trust_score, price, contact_phone, website, business_hours
    """
    running = upload_jobs.running_job_for(current_user.id)
    if running:
        raise HTTPException(
            status_code=409,
            detail=f"Upload {running.job_id} is already running. Processed: {running.status.processed}/{running.status.total}",
        )

    # Read one byte past the limit so oversize files are detected without reading them whole
    raw = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    try:
        validate_upload(file.filename, len(raw))
        records = parse_csv(decode_csv_upload(raw))
    except CsvValidationError as e:
        logger.info("bulk_upload_rejected", filename=file.filename, reason=e.message)
        raise HTTPException(status_code=400, detail=e.message)

    job = upload_jobs.create(current_user.id, total=len(records))
    background_tasks.add_task(run_upload_job, job, records, backend)
    logger.info("bulk_upload_started", job_id=job.job_id, total=len(records), owner_id=current_user.id)

    return BulkUploadStarted(
        status="started",
        job_id=job.job_id,
        total=len(records),
        message=f"Importing {len(records)} agencies",
    )


@router.get("/agencies/bulk-upload/{job_id}", response_model=UploadStatusOut)
async def get_bulk_upload_status(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_admin),
):
    job = upload_jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@router.post("/agencies/bulk-upload/{job_id}/cancel", response_model=UploadStatusOut)
async def cancel_bulk_upload(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_admin),
):
    """Stop an upload before its next row. Rows already inserted are kept."""
    job = upload_jobs.cancel(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@router.get("/agencies", response_model=AgencyPage)
async def read_admin_agencies(
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
    status_filter: str = Query(default="all", alias="status", pattern="^(all|pending|approved|rejected)$"),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
) -> Any:
    return await agency_service.list_admin_agencies(backend, status=status_filter, search=search, page=page)


@router.patch("/agencies/{agency_id}/status", response_model=AgencyOut)
async def update_agency_status(
    agency_id: str,
    body: StatusUpdate,
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
) -> Any:
    agency = await agency_service.set_agency_status(backend, agency_id, body.status)
    logger.info("agency_status_changed", agency_id=agency_id, status=body.status.value, by=current_user.id)
    return agency


@router.patch("/agencies/{agency_id}/verify", response_model=AgencyOut)
async def update_agency_verification(
    agency_id: str,
    body: VerifyUpdate,
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
) -> Any:
    return await agency_service.set_agency_verified(backend, agency_id, body.is_verified)


@router.patch("/agencies/{agency_id}/trust-score", response_model=AgencyOut)
async def update_agency_trust_score(
    agency_id: str,
    body: TrustScoreUpdate,
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
) -> Any:
    return await agency_service.set_trust_score(backend, agency_id, body.trust_score)


@router.delete("/agencies/{agency_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_agency(
    agency_id: str,
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
) -> None:
    await agency_service.delete_agency(backend, agency_id)
    logger.info("agency_deleted", agency_id=agency_id, by=current_user.id)


@router.patch("/agencies/{agency_id}/owner", response_model=AgencyOut)
async def update_agency_owner(
    agency_id: str,
    body: OwnerUpdate,
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
) -> Any:
    agency = await agency_service.set_agency_owner(backend, agency_id, body.owner_id)
    logger.info("agency_owner_changed", agency_id=agency_id, owner_id=body.owner_id, by=current_user.id)
    return agency


@router.get("/reviews", response_model=List[ReviewOut])
async def read_reviews_for_moderation(
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
    agency_id: Optional[str] = None,
    status_filter: str = Query(default="all", alias="status", pattern="^(all|pending|approved|rejected)$"),
) -> Any:
    """Reviews in every status, newest first."""
    return await review_service.list_reviews_for_moderation(backend, agency_id=agency_id, status=status_filter)


@router.patch("/reviews/{review_id}/status", response_model=ReviewOut)
async def update_review_status(
    review_id: str,
    body: ReviewStatusUpdate,
    current_user: CurrentUser = Depends(get_current_admin),
    backend: Backend = Depends(get_backend_dep),
) -> Any:
    review = await review_service.set_review_status(backend, review_id, body.status)
    logger.info("review_status_changed", review_id=review_id, status=body.status.value, by=current_user.id)
    return review
