from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from app.models.agency import AgencyStatus
from app.models.review import ReviewStatus


class AgencyOut(BaseModel):
    id: str
    name: str
    location: str
    description: str
    contact_email: str
    contact_phone: str = ""
    website: str = ""
    business_hours: str = ""
    trust_score: float = 0
    price: float = 0
    status: str
    is_verified: bool = False
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AgencyPage(BaseModel):
    items: List[AgencyOut]
    total: int
    page: int
    page_size: int
    total_pages: int


class StatusUpdate(BaseModel):
    status: AgencyStatus


class VerifyUpdate(BaseModel):
    is_verified: bool


class TrustScoreUpdate(BaseModel):
    trust_score: float = Field(ge=0, le=100)


class BulkUploadStarted(BaseModel):
    status: str
    job_id: str
    total: int
    message: str


class UploadStatusOut(BaseModel):
    job_id: str
    owner_id: Optional[str] = None
    total: int
    processed: int
    success: int
    failed: int
    state: str
    errors: List[str] = []
    cancel_requested: bool = False
    started_at: str
    finished_at: Optional[str] = None
    error: Optional[str] = None


class OwnerUpdate(BaseModel):
    owner_id: Optional[str] = None


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    content: str


class ReviewOut(BaseModel):
    id: str
    agency_id: str
    user_id: str
    rating: int
    content: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReviewList(BaseModel):
    items: List[ReviewOut]
    total: int
    average_rating: Optional[float] = None


class ReviewStatusUpdate(BaseModel):
    status: ReviewStatus
