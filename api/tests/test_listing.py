from datetime import datetime

import pytest
from sqlalchemy import insert

from pos_api.db.listing import FilterSet, Page, paginate, period_start
from pos_api.db.schema import categories


@pytest.mark.parametrize(
    "page, limit, expected",
    [
        (None, None, (1, 25)),
        ("2", "10", (2, 10)),
        ("0", "500", (1, 100)),
        ("-3", "0", (1, 1)),
        ("abc", "xyz", (1, 25)),
    ],
)
def test_page_clamp(page, limit, expected):
    clamped = Page.clamp(page, limit)
    assert (clamped.page, clamped.limit) == expected


def test_page_meta_rounds_pages_up():
    assert Page(page=2, limit=25).meta(30) == {"page": 2, "limit": 25, "total": 30, "pages": 2}
    assert Page(page=1, limit=25).meta(0)["pages"] == 0


def test_filter_set_binds_values():
    filters = (
        FilterSet()
        .add_active("c.active", "true")
        .add_search(["c.name"], "  yerba ")
        .add_date_range("c.created_at", "2024-01-01", "not-a-date")
    )

    assert filters.where == (
        "c.active = :active AND (LOWER(c.name) LIKE LOWER(:search)) AND DATE(c.created_at) >= :start_date"
    )
    assert filters.params == {"active": True, "search": "%yerba%", "start_date": "2024-01-01"}


def test_filter_set_all_skips_active_clause():
    assert FilterSet().add_active("active", "all").where == "1=1"


def test_second_page_of_thirty_rows(db):
    for number in range(30):
        db.execute(insert(categories).values(name=f"Categoría {number:02d}"))
    db.commit()

    rows, meta = paginate(
        db,
        "SELECT c.* FROM categories c WHERE {where}",
        "SELECT COUNT(*) FROM categories c WHERE {where}",
        FilterSet(),
        Page.clamp(2, 25),
        order_by="c.name ASC",
    )

    assert len(rows) == 5
    assert rows[0]["name"] == "Categoría 25"
    assert meta == {"page": 2, "limit": 25, "total": 30, "pages": 2}


def test_period_start():
    now = datetime(2024, 3, 15, 18, 30, 0)
    assert period_start("today", now) == "2024-03-15 00:00:00"
    assert period_start("week", now) == "2024-03-08 18:30:00"
    with pytest.raises(ValueError):
        period_start("decade", now)
