from .agency import Agency, AgencyStatus
from .review import Review, ReviewStatus

__all__ = [
    "Agency",
    "AgencyStatus",
    "Review",
    "ReviewStatus",
]
