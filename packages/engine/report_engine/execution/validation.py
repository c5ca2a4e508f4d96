"""Pre-execution safety check for resolved query text."""

import re
from typing import Iterable

from ..errors import QueryValidationError
from ..schemas.config import DEFAULT_FORBIDDEN_KEYWORDS


def validate_query(query: str, forbidden_keywords: Iterable[str] = DEFAULT_FORBIDDEN_KEYWORDS) -> None:
    """Reject empty queries and queries containing a forbidden keyword.

    Keywords match as whole words, case-insensitively, so a column named
    ``last_update`` or ``dropped_at`` passes while ``drop table x`` does not.

    Raises:
        QueryValidationError: If the query is empty or uses a forbidden keyword

    Example:
        validate_query("SELECT * FROM t")     → None
        validate_query("DROP TABLE t")        → QueryValidationError
    """
    if not query or not query.strip():
        raise QueryValidationError("Query is empty")

    for keyword in forbidden_keywords:
        if re.search(r'\b' + re.escape(keyword) + r'\b', query, re.IGNORECASE):
            raise QueryValidationError(f"Potentially dangerous operation: {keyword.upper()}")
