from __future__ import annotations

import math
import re
from typing import Iterable, Protocol

import strawberry
from sqlalchemy import Table, func, select
from sqlalchemy.engine import Connection, RowMapping

from fingraph.errors import ValidationException

DEFAULT_PAGE = 1
DEFAULT_TAKE = 10

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class SortKey(Protocol):
    field: str
    direction: bool


@strawberry.type(description="Metadata describing a paginated result window")
class PageInfo:
    total: int
    page: int
    take: int
    has_next_page: bool
    total_pages: int


def build_page_info(total: int, page: int = DEFAULT_PAGE, take: int = DEFAULT_TAKE) -> PageInfo:
    if page < 1:
        raise ValueError("page must be at least 1.")
    if take < 1:
        raise ValueError("take must be at least 1.")
    total_pages = math.ceil(total / take)
    return PageInfo(
        total=total,
        page=page,
        take=take,
        has_next_page=page < total_pages,
        total_pages=total_pages,
    )


def page_offset(page: int, take: int) -> int:
    return (page - 1) * take


def column_name(field: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", field.strip()).lower()


def order_clauses(table: Table, sort_by: Iterable[SortKey] | None) -> list:
    clauses = []
    for key in sort_by or ():
        name = column_name(key.field)
        if name not in table.c:
            raise ValidationException(f"Unknown sort field: {key.field}")
        column = table.c[name]
        clauses.append(column.asc() if key.direction else column.desc())
    if not clauses:
        clauses.append(table.c.created_at.asc())
    clauses.append(table.c.id.asc())
    return clauses


def paginate(
    conn: Connection,
    table: Table,
    conditions: list,
    page: int = DEFAULT_PAGE,
    take: int = DEFAULT_TAKE,
    sort_by: Iterable[SortKey] | None = None,
) -> tuple[list[RowMapping], PageInfo]:
    total = conn.execute(
        select(func.count()).select_from(table).where(*conditions)
    ).scalar_one()
    rows = (
        conn.execute(
            select(table)
            .where(*conditions)
            .order_by(*order_clauses(table, sort_by))
            .offset(page_offset(page, take))
            .limit(take)
        )
        .mappings()
        .all()
    )
    return list(rows), build_page_info(total, page, take)
