"""
Success envelope helpers.
"""
from rest_framework import status as http_status
from rest_framework.response import Response


def success_response(data=None, status=http_status.HTTP_200_OK, headers=None):
    """Wrap `data` as {"success": true, "data": ...}."""
    return Response({'success': True, 'data': data}, status=status, headers=headers)


class EnvelopeResponseMixin:
    """
    ViewSet mixin that wraps the default ModelViewSet payloads in the
    success envelope. Paginated lists are already wrapped by the paginator.
    """

    def finalize_response(self, request, response, *args, **kwargs):
        data = getattr(response, 'data', None)
        if (
            isinstance(response, Response)
            and response.status_code < 400
            and response.status_code != http_status.HTTP_204_NO_CONTENT
            and not (isinstance(data, dict) and 'success' in data)
        ):
            response.data = {'success': True, 'data': data}
        return super().finalize_response(request, response, *args, **kwargs)
