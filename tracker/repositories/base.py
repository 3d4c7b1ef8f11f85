from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel.sql.expression import SelectOfScalar

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    page: int = 0
    size: int = 10
    sort_field: str = "created_at"
    descending: bool = True


@dataclass(frozen=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    size: int


async def paginate(
    session: AsyncSession,
    statement: SelectOfScalar,
    request: PageRequest,
    sort_column,
    tiebreak_column,
) -> Page:
    count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
    total = (await session.exec(count_stmt)).one()

    order = sort_column.desc() if request.descending else sort_column.asc()
    tiebreak = tiebreak_column.desc() if request.descending else tiebreak_column.asc()
    page_stmt = (
        statement.order_by(order, tiebreak)
        .offset(request.page * request.size)
        .limit(request.size)
    )
    items = (await session.exec(page_stmt)).all()
    return Page(items=items, total=total, page=request.page, size=request.size)
