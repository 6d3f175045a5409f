from __future__ import annotations

from django.conf import settings
from django.db.models import QuerySet
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 200

    def get_page_size(self, request):
        self.page_size = int(getattr(settings, "CARE_API_PAGE_SIZE", self.page_size))
        return super().get_page_size(request)


def paginate(request, queryset, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    Paginated list response: { count, next, previous, results }.
    Unordered querysets are ordered newest first so pages are stable.
    """
    if isinstance(queryset, QuerySet) and not queryset.ordered:
        queryset = queryset.order_by("-created_at")

    p = paginator or DefaultPagination()
    page = p.paginate_queryset(queryset, request)
    if page is None:
        return Response(serializer_class(queryset, many=True).data)

    return p.get_paginated_response(serializer_class(page, many=True).data)
