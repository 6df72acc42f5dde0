"""
Agency listing and moderation.

Listings are fetched from the backend with a status filter and then
searched, filtered, sorted and paginated in memory. Names starting with a
letter sort before names starting with a digit or symbol.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.core.errors import BackendError, NOT_FOUND
from app.core.retry import retryable_query
from app.models.agency import AgencyStatus
from app.services.backend import Backend

COLLECTION = "agencies"
PUBLIC_PAGE_SIZE = 12
ADMIN_PAGE_SIZE = 12
MAX_PAGE_SIZE = 50

_STARTS_WITH_LETTER = re.compile(r"^[A-Za-z]")


@dataclass
class AgencyFilters:
    search: Optional[str] = None
    location: Optional[str] = None
    min_trust_score: Optional[float] = None
    max_price: Optional[float] = None
    verified_only: bool = False


def name_sort_key(row: Dict[str, Any]):
    name = row.get("name") or ""
    return (0 if _STARTS_WITH_LETTER.match(name) else 1, name.casefold())


def _contains(value: Optional[str], needle: str) -> bool:
    return needle in (value or "").lower()


def filter_agencies(rows: List[Dict[str, Any]], filters: AgencyFilters) -> List[Dict[str, Any]]:
    result = []
    search = (filters.search or "").strip().lower()
    location = (filters.location or "").strip().lower()

    for row in rows:
        if search and not (
            _contains(row.get("name"), search)
            or _contains(row.get("location"), search)
            or _contains(row.get("description"), search)
        ):
            continue
        if location and not _contains(row.get("location"), location):
            continue
        if filters.min_trust_score and (row.get("trust_score") or 0) < filters.min_trust_score:
            continue
        if filters.max_price is not None and (row.get("price") or 0) > filters.max_price:
            continue
        if filters.verified_only and not row.get("is_verified"):
            continue
        result.append(row)
    return result


def sort_agencies(rows: List[Dict[str, Any]], sort: str = "name", order: str = "asc") -> List[Dict[str, Any]]:
    reverse = order == "desc"
    if sort == "name":
        return sorted(rows, key=name_sort_key, reverse=reverse)
    return sorted(rows, key=lambda row: (row.get(sort) is None, row.get(sort) or 0), reverse=reverse)


def paginate(rows: List[Dict[str, Any]], page: int = 1, page_size: int = PUBLIC_PAGE_SIZE) -> Dict[str, Any]:
    page = max(1, page)
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))
    start = (page - 1) * page_size
    return {
        "items": rows[start : start + page_size],
        "total": len(rows),
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(len(rows) / page_size),
    }


async def list_public_agencies(
    backend: Backend,
    filters: Optional[AgencyFilters] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = 1,
    page_size: int = PUBLIC_PAGE_SIZE,
) -> Dict[str, Any]:
    """Approved agencies only."""
    rows = await retryable_query(
        lambda: backend.query(
            COLLECTION,
            filters={"status": AgencyStatus.APPROVED.value},
            ordering=[("trust_score", "desc")],
        )
    )
    rows = filter_agencies(rows, filters or AgencyFilters())
    return paginate(sort_agencies(rows, sort, order), page, page_size)


async def get_public_agency(backend: Backend, agency_id: str) -> Dict[str, Any]:
    row = await retryable_query(lambda: backend.get(COLLECTION, agency_id))
    if row.get("status") != AgencyStatus.APPROVED.value:
        raise BackendError("Agency not found", code=NOT_FOUND)
    return row


async def list_admin_agencies(
    backend: Backend,
    status: str = "all",
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = ADMIN_PAGE_SIZE,
) -> Dict[str, Any]:
    """All agencies (or one status) for the admin tables; search matches name, location and email."""
    filters = {} if status == "all" else {"status": status}
    rows = await retryable_query(
        lambda: backend.query(COLLECTION, filters=filters, ordering=[("name", "asc")])
    )
    needle = (search or "").strip().lower()
    if needle:
        rows = [
            row
            for row in rows
            if _contains(row.get("name"), needle)
            or _contains(row.get("location"), needle)
            or _contains(row.get("contact_email"), needle)
        ]
    return paginate(sorted(rows, key=name_sort_key), page, page_size)


async def set_agency_status(backend: Backend, agency_id: str, status: AgencyStatus) -> Dict[str, Any]:
    return await retryable_query(lambda: backend.update(COLLECTION, agency_id, {"status": status.value}))


async def set_agency_verified(backend: Backend, agency_id: str, is_verified: bool) -> Dict[str, Any]:
    return await retryable_query(lambda: backend.update(COLLECTION, agency_id, {"is_verified": is_verified}))


async def set_trust_score(backend: Backend, agency_id: str, trust_score: float) -> Dict[str, Any]:
    if trust_score < 0 or trust_score > 100:
        raise ValueError("Trust score must be between 0 and 100")
    return await retryable_query(lambda: backend.update(COLLECTION, agency_id, {"trust_score": trust_score}))


async def delete_agency(backend: Backend, agency_id: str) -> bool:
    return await retryable_query(lambda: backend.delete(COLLECTION, agency_id))


async def set_agency_owner(backend: Backend, agency_id: str, owner_id: Optional[str]) -> Dict[str, Any]:
    """Assign an agency to an admin account, or detach it with owner_id=None."""
    return await retryable_query(lambda: backend.update(COLLECTION, agency_id, {"owner_id": owner_id or None}))
