"""Typed filter criteria shared by the list/search endpoints.

Each listing declares a closed set of filter keys mapped to a column and a
matcher. Callers hand over raw values; only declared keys are honoured and the
persistence layer translates the resulting conditions into its own query
language.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


class Matcher(str, Enum):
    EXACT = "exact"
    ICONTAINS = "icontains"


@dataclass(frozen=True, slots=True)
class FilterField:
    column: str
    matcher: Matcher


@dataclass(frozen=True, slots=True)
class Condition:
    column: str
    matcher: Matcher
    value: Any


@dataclass(frozen=True, slots=True)
class SearchClause:
    """OR-combined case-insensitive match over several columns."""

    columns: Tuple[str, ...]
    term: str


@dataclass(slots=True)
class FilterCriteria:
    conditions: List[Condition] = field(default_factory=list)
    search: Optional[SearchClause] = None

    @classmethod
    def build(
        cls,
        schema: Mapping[str, FilterField],
        values: Mapping[str, Any],
        *,
        search_columns: Sequence[str] = (),
        search: Optional[str] = None,
    ) -> "FilterCriteria":
        conditions: List[Condition] = []
        for key, spec in schema.items():
            value = values.get(key)
            if value is None or value == "":
                continue
            conditions.append(Condition(spec.column, spec.matcher, value))
        clause = None
        if search and search.strip() and search_columns:
            clause = SearchClause(tuple(search_columns), search.strip())
        return cls(conditions=conditions, search=clause)


@dataclass(frozen=True, slots=True)
class Page:
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(slots=True)
class PageResult:
    items: List[Any]
    total: int
    page: Page

    @property
    def total_pages(self) -> int:
        if self.page.limit <= 0:
            return 0
        return -(-self.total // self.page.limit)


AUDIT_LOG_FILTERS: Dict[str, FilterField] = {
    "action": FilterField("a.action", Matcher.ICONTAINS),
    "user_role": FilterField("a.user_role", Matcher.ICONTAINS),
    "method": FilterField("a.method", Matcher.ICONTAINS),
    "ip_address": FilterField("a.ip_address", Matcher.ICONTAINS),
    "user_id": FilterField("a.user_id", Matcher.EXACT),
    "success": FilterField("a.success", Matcher.EXACT),
    "browser": FilterField("s.browser", Matcher.ICONTAINS),
    "os": FilterField("s.os", Matcher.ICONTAINS),
    "deviceType": FilterField("s.device_type", Matcher.ICONTAINS),
    "city": FilterField("s.city", Matcher.ICONTAINS),
    "country": FilterField("s.country", Matcher.ICONTAINS),
}

USER_FILTERS: Dict[str, FilterField] = {
    "role": FilterField("role", Matcher.EXACT),
    "status": FilterField("status", Matcher.EXACT),
}
USER_SEARCH_COLUMNS = ("first_name", "last_name", "email")

COMPANY_FILTERS: Dict[str, FilterField] = {}
COMPANY_SEARCH_COLUMNS = ("name", "email", "phone_number")
