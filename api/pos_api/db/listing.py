"""Paginated listings over allow-listed, parameter-bound filters."""
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from pos_api.core.config import settings

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class Page:
    page: int
    limit: int

    @classmethod
    def clamp(cls, page: Any = 1, limit: Any = None) -> "Page":
        page_num = _to_int(page, 1)
        limit_num = _to_int(limit, settings.default_page_size)
        return cls(
            page=max(1, page_num),
            limit=min(settings.max_page_size, max(1, limit_num)),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "pages": math.ceil(total / self.limit),
        }


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class FilterSet:
    clauses: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)

    def add(self, clause: str, **params: Any) -> "FilterSet":
        self.clauses.append(clause)
        self.params.update(params)
        return self

    def add_date_range(self, column: str, start_date: str | None, end_date: str | None) -> "FilterSet":
        if start_date and DATE_RE.match(start_date):
            self.add(f"DATE({column}) >= :start_date", start_date=start_date)
        if end_date and DATE_RE.match(end_date):
            self.add(f"DATE({column}) <= :end_date", end_date=end_date)
        return self

    def add_search(self, columns: list[str], term: str | None) -> "FilterSet":
        if term and term.strip():
            likes = " OR ".join(f"LOWER({column}) LIKE LOWER(:search)" for column in columns)
            self.add(f"({likes})", search=f"%{term.strip()}%")
        return self

    def add_active(self, column: str, active: str | None) -> "FilterSet":
        if active is not None and active != "all":
            self.add(f"{column} = :active", active=active == "true")
        return self

    @property
    def where(self) -> str:
        return " AND ".join(self.clauses) if self.clauses else "1=1"


def paginate(
    db: Session,
    select_sql: str,
    count_sql: str,
    filters: FilterSet,
    page: Page,
    order_by: str,
) -> tuple[list[dict], dict]:
    """Run ``select_sql``/``count_sql`` (each holding a ``{where}`` slot) for one page."""
    where = filters.where
    total = db.execute(text(count_sql.format(where=where)), filters.params).scalar_one()
    rows = db.execute(
        text(f"{select_sql.format(where=where)} ORDER BY {order_by} LIMIT :limit OFFSET :offset"),
        {**filters.params, "limit": page.limit, "offset": page.offset},
    ).mappings().all()
    return [dict(row) for row in rows], page.meta(int(total))


PERIODS = ("today", "week", "month", "year")


def period_start(period: str, now: datetime | None = None) -> str:
    """Lower bound, as a ``YYYY-MM-DD HH:MM:SS`` string, of a reporting period."""
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    if period == "today":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif period == "week":
        start = now - timedelta(days=7)
    elif period == "month":
        start = now - timedelta(days=30)
    elif period == "year":
        start = now - timedelta(days=365)
    else:
        raise ValueError(f"Unknown period: {period}")
    return start.strftime("%Y-%m-%d %H:%M:%S")


def month_start(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0).strftime("%Y-%m-%d %H:%M:%S")
