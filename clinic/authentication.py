"""
Authentication classes for the API.

Both the legacy ``Token`` header and SimpleJWT bearer tokens are
accepted. Either way the resolved account is refused when it has been
locked by an administrator or its access deadline has passed.
"""
from __future__ import annotations

from rest_framework import authentication, exceptions
from rest_framework_simplejwt import authentication as jwt_authentication


def ensure_account_usable(user) -> None:
    if getattr(user, 'lock', False):
        raise exceptions.AuthenticationFailed('Account is locked')
    if hasattr(user, 'is_expired') and user.is_expired():
        raise exceptions.AuthenticationFailed('Account access has expired')


class TokenAuthentication(authentication.TokenAuthentication):
    """Token authentication using the ``Token`` keyword."""

    keyword = 'Token'

    def authenticate_credentials(self, key):
        user, token = super().authenticate_credentials(key)
        ensure_account_usable(user)
        return user, token


class JWTAuthentication(jwt_authentication.JWTAuthentication):

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        ensure_account_usable(user)
        return user
