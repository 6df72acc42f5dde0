"""
Agency Model

A study-abroad consultancy listed in the directory. Agencies are created by
owners or in bulk by admins (CSV import), start out "pending", and only
"approved" agencies appear in the public listing.

Usage:
    from app.models.agency import Agency, AgencyStatus

    agency = Agency(
        name="Acme Edu",
        location="Pune",
        description="Counselling for UK and Canada admissions",
        contact_email="hello@acme.edu",
    )
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel, Column
from sqlalchemy import Text, Index, UniqueConstraint

from app.core.typing import utc_now


class AgencyStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _new_id() -> str:
    return uuid.uuid4().hex


class Agency(SQLModel, table=True):
    """
    Consultancy agency listing.

    Attributes:
        id: Primary key (uuid hex string)
        name, location, description, contact_email: Required listing fields
        contact_phone, website, business_hours: Optional contact details ("" when absent)
        trust_score: Admin-assigned score, 0-100
        price: Starting consultation price (>= 0)
        status: Moderation status ("pending", "approved", "rejected")
        is_verified: Verified badge toggled by admins
        owner_id: Auth user id of the owner (the admin, for bulk imports)
    """

    __tablename__ = "agencies"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=32)
    name: str = Field(max_length=300)
    location: str = Field(max_length=300)
    description: str = Field(sa_column=Column(Text, nullable=False))
    contact_email: str = Field(max_length=320)
    contact_phone: str = Field(default="", max_length=50)
    website: str = Field(default="", max_length=500)
    business_hours: str = Field(default="", max_length=300)
    trust_score: float = Field(default=0.0, ge=0, le=100)
    price: float = Field(default=0.0, ge=0)
    status: str = Field(default=AgencyStatus.PENDING.value, max_length=20, index=True)
    is_verified: bool = Field(default=False)
    owner_id: Optional[str] = Field(default=None, index=True, max_length=64)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        UniqueConstraint("name", "location", name="uq_agency_name_location"),
        # Public listing: approved agencies by trust score
        Index("ix_agency_status_trust", "status", "trust_score"),
    )


__all__ = ["Agency", "AgencyStatus"]
