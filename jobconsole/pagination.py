from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from pydantic import BaseModel, Field, field_validator


class FilterClause(BaseModel):
    field: str
    operator: str = "eq"
    value: str


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=200)
    sort_by: Optional[str] = None
    sort_order: str = "desc"
    search: Optional[str] = None
    filters: List[FilterClause] = Field(default_factory=list)

    @field_validator("sort_order")
    @classmethod
    def _check_order(cls, value: str) -> str:
        value = value.lower()
        if value not in ("asc", "desc"):
            raise ValueError("sort_order must be 'asc' or 'desc'")
        return value

    def query_items(self) -> List[Tuple[str, str]]:
        items = [("page", str(self.page)), ("page_size", str(self.page_size))]
        if self.sort_by:
            items.append(("sort_by", self.sort_by))
            items.append(("sort_order", self.sort_order))
        if self.search:
            items.append(("search", self.search))
        for clause in self.filters:
            # field[op]=value, the backend's bracketed filter syntax
            items.append((f"{clause.field}[{clause.operator}]", clause.value))
        return items

    def cache_key(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(sorted(self.query_items()))


def build_backend_url(path: str, params: Optional[PaginationParams] = None) -> str:
    if params is None:
        return path
    return f"{path}?{urlencode(params.query_items())}"


def parse_filters(query: Dict[str, Any], allowed: Dict[str, Tuple[str, ...]]) -> List[FilterClause]:
    """Pick ``field`` / ``field[op]`` entries out of a query mapping.

    Unknown fields and operators are ignored.
    """
    clauses = []
    for raw_key, value in query.items():
        if value in (None, ""):
            continue
        if raw_key.endswith("]") and "[" in raw_key:
            field, op = raw_key[:-1].split("[", 1)
        else:
            field, op = raw_key, "eq"
        if op in allowed.get(field, ()):
            clauses.append(FilterClause(field=field, operator=op, value=str(value)))
    return clauses
