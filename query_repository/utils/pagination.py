"""페이지네이션 유틸리티 모듈.

Pagination utility module for query builders.
Provides a paginate function and a Page response model
for consistent pagination across repositories.
"""

import math
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from query_repository.utils.exceptions import QueryBuilderError

if TYPE_CHECKING:
    from query_repository.query_builder import QueryBuilder


class Page(BaseModel):
    """페이지네이션 결과 모델.

    Pagination result model.
    Contains the paginated rows and metadata for pagination controls.

    Attributes:
        items: 현재 페이지 행 목록 (Rows for the current page)
        total: 전체 행 수 (Total count across all pages)
        page: 현재 페이지 번호 (Current page number, 1-based)
        per_page: 페이지당 행 수 (Rows per page)
        pages: 전체 페이지 수 (Total number of pages)
    """

    items: list[dict[str, Any]]  # 현재 페이지 행 목록 (Paginated rows)
    total: int  # 전체 행 수 (Total row count)
    page: int  # 현재 페이지 번호 — 1부터 시작 (Current page, 1-indexed)
    per_page: int  # 페이지당 행 수 (Rows per page)
    pages: int  # 전체 페이지 수 (Total pages, computed: ceil(total/per_page))


async def paginate(
    builder: "QueryBuilder",
    page: int = 1,
    per_page: int = 20,
) -> Page:
    """쿼리 빌더의 SELECT에 페이지네이션을 수행합니다.

    Execute the builder's SELECT one page at a time, returning rows and totals.
    Runs two queries: one for the total count (via subquery) and one for
    the actual page of rows with OFFSET/LIMIT. The builder keeps the page's
    offset and limit afterwards.

    Args:
        builder: SELECT가 구성된 쿼리 빌더 (Builder holding a SELECT statement)
        page: 요청 페이지 번호, 1부터 시작 (Page number, 1-indexed, default: 1)
        per_page: 페이지당 행 수 (Rows per page, default: 20)

    Returns:
        Page: 페이지 행과 메타데이터 (Page rows with metadata)

    Raises:
        QueryBuilderError: page 또는 per_page가 1 미만인 경우 (page or per_page below 1)
    """
    if page < 1 or per_page < 1:
        raise QueryBuilderError("page and per_page must be positive")

    # 전체 개수 조회 — 제한 없이 COUNT 실행 (Count total without limits)
    builder.set_first_result(0).set_max_results(None)
    total: int = await builder.count()

    # 페이지 행 조회 — OFFSET/LIMIT 적용 (Fetch page rows with offset/limit)
    builder.set_first_result((page - 1) * per_page).set_max_results(per_page)
    result = await builder.execute_query()
    items: list[dict[str, Any]] = [dict(row) for row in result.mappings().all()]

    return Page(
        items=items,
        total=total,
        page=page,
        per_page=per_page,
        pages=math.ceil(total / per_page),
    )
