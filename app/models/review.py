"""
Review Model

A signed-in user's rating (1-5) and comment on an approved agency. Reviews go
live immediately unless REVIEWS_REQUIRE_APPROVAL is set, in which case they
start "pending" until an admin approves them. Only approved reviews are shown
publicly and count towards an agency's average rating.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel, Column
from sqlalchemy import Text, Index

from app.core.typing import utc_now


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Review(SQLModel, table=True):
    __tablename__ = "reviews"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=32)
    agency_id: str = Field(foreign_key="agencies.id", max_length=32)
    user_id: str = Field(max_length=64, index=True)
    rating: int = Field(ge=1, le=5)
    content: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(default=ReviewStatus.APPROVED.value, max_length=20)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        # Agency page: approved reviews, newest first
        Index("ix_review_agency_status", "agency_id", "status"),
    )


__all__ = ["Review", "ReviewStatus"]
