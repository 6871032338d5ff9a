"""
Page-number pagination that renders the list envelope:

    {"success": true, "data": {"items": [...], "total": N, "page": P,
                               "pageSize": S, "totalPages": T}}
"""
import math

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class EnvelopePagination(PageNumberPagination):
    page_query_param = 'page'
    page_size_query_param = 'pageSize'
    max_page_size = 100

    def get_paginated_response(self, data):
        total = self.page.paginator.count
        page_size = self.page.paginator.per_page
        return Response({
            'success': True,
            'data': {
                'items': data,
                'total': total,
                'page': self.page.number,
                'pageSize': page_size,
                'totalPages': math.ceil(total / page_size) if page_size else 0,
            },
        })

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'data': {
                    'type': 'object',
                    'properties': {
                        'items': schema,
                        'total': {'type': 'integer'},
                        'page': {'type': 'integer'},
                        'pageSize': {'type': 'integer'},
                        'totalPages': {'type': 'integer'},
                    },
                },
            },
        }
