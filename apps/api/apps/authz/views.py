"""
Authz views: current user.
"""
from rest_framework.views import APIView

from apps.core.responses import success_response
from apps.authz.serializers import CurrentUserSerializer


class CurrentUserView(APIView):
    """
    GET /api/auth/me/

    Returns the authenticated user with clinic and role names.
    """

    def get(self, request):
        return success_response(CurrentUserSerializer(request.user).data)
