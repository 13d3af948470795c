from __future__ import annotations

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from apps.common.response import page_success


class StandardPagination(PageNumberPagination):
    """页码分页：?page=&page_size=，单页最多 100 条；结果放 data，分页信息放 extra"""

    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100

    def get_paginated_response(self, data) -> Response:
        page = self.page
        return page_success(
            data,
            page=page.number,
            page_size=page.paginator.per_page,
            total=page.paginator.count,
            total_pages=page.paginator.num_pages,
            has_next=page.has_next(),
            has_previous=page.has_previous(),
        )
