"""
DRF authentication classes.

ActiveUserJWTAuthentication is SimpleJWT's JWTAuthentication with one
extra rule: suspended members are rejected even while their access
token has not expired yet.
"""

from django.utils.translation import gettext_lazy as _
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed


class ActiveUserJWTAuthentication(JWTAuthentication):
    """JWT authentication that refuses suspended accounts."""

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        if user.is_suspended:
            raise AuthenticationFailed(_("Account is suspended"), code="user_suspended")
        return user
