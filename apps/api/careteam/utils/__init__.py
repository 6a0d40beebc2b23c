"""Utility modules."""

from careteam.utils.normalization import normalize_email, normalize_name
from careteam.utils.pagination import PaginationParams, get_pagination, paginate_query

__all__ = [
    "normalize_email",
    "normalize_name",
    "PaginationParams",
    "get_pagination",
    "paginate_query",
]
