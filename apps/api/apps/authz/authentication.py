"""
JWT authentication that also binds the user to the logging context.
"""
from rest_framework_simplejwt.authentication import JWTAuthentication

from apps.core.observability.correlation import bind_user_context


class ClinicJWTAuthentication(JWTAuthentication):
    """
    Standard simplejwt bearer authentication.

    The correlation middleware runs before DRF authenticates the token, so
    user, roles and clinic are bound here once the token is validated.
    """

    def authenticate(self, request):
        result = super().authenticate(request)
        if result is not None:
            bind_user_context(result[0])
        return result
