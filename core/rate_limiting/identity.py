"""
Caller identity for quota keys.

Two lookups live here and must not be confused:

- authenticated_user_id(): the caller's user id, taken from the session user or
  from a bearer token whose signature and expiry were verified.
- peek_role(): reads the ``role``/``tier`` claim from a bearer token WITHOUT
  verifying it. The result only selects a quota tier and is never used for
  authorization. Decode failures return None.
"""

import logging
from typing import Optional

from django.core.exceptions import ObjectDoesNotExist
from django.http import HttpRequest
from rest_framework_simplejwt.exceptions import TokenBackendError, TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.state import token_backend
from rest_framework_simplejwt.tokens import AccessToken

from .config import USER_KEY_ALWAYS, USER_KEY_NEVER

logger = logging.getLogger(__name__)


DEFAULT_USER_ROLE = "user"
ANONYMOUS_ROLE = "ip"


def bearer_token(request: HttpRequest) -> Optional[str]:
    header = request.META.get("HTTP_AUTHORIZATION", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _session_user(request: HttpRequest):
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return user
    return None


def authenticated_user_id(request: HttpRequest) -> Optional[str]:
    user = _session_user(request)
    if user is not None:
        return str(user.pk)

    token = bearer_token(request)
    if token is None:
        return None
    try:
        validated = AccessToken(token)
    except TokenError:
        # Invalid or expired token: fall back to the client address.
        return None
    user_id = validated.get(api_settings.USER_ID_CLAIM)
    return str(user_id) if user_id is not None else None


def peek_role(token: str) -> Optional[str]:
    """Non-authoritative role lookup from an unverified token payload."""
    try:
        payload = token_backend.decode(token, verify=False)
    except (TokenBackendError, ValueError, TypeError):
        return None
    role = payload.get("role") or payload.get("tier")
    return str(role) if role else None


def resolve_role(request: HttpRequest, user_id: Optional[str]) -> str:
    user = _session_user(request)
    if user is not None:
        try:
            role = user.profile.role
        except (AttributeError, ObjectDoesNotExist):
            role = None
        if role:
            return role

    if user_id is None:
        return ANONYMOUS_ROLE

    token = bearer_token(request)
    if token is None:
        return DEFAULT_USER_ROLE
    return peek_role(token) or DEFAULT_USER_ROLE


def client_ip(request: HttpRequest) -> str:
    address = request.META.get("REMOTE_ADDR")
    if address:
        return address
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    first = forwarded.split(",")[0].strip()
    return first or "global"


def quota_key(request: HttpRequest, user_id: Optional[str], role: str, strategy: str) -> str:
    if strategy == USER_KEY_NEVER:
        use_user_key = False
    elif strategy == USER_KEY_ALWAYS:
        use_user_key = True
    else:
        use_user_key = user_id is not None

    if use_user_key and user_id is not None:
        return f"user:{user_id}:{role}"
    return f"ip:{client_ip(request)}"
