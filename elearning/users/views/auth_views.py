"""
E-Learning User Authentication Views

This module provides the JWT token endpoint for the E-Learning system.

Views:
- CustomTokenObtainPairView: JWT authentication with role metadata

Tokens are returned in the response body and sent back by clients as
``Authorization: Bearer <access>``; the rate limiter and the payment API both
read them from that header.

Author: DSP Development Team
Version: 1.0.0
"""

import logging

from rest_framework import status
from rest_framework_simplejwt.views import TokenObtainPairView

from ..serializers import CustomTokenObtainPairSerializer

logger = logging.getLogger(__name__)


class CustomTokenObtainPairView(TokenObtainPairView):
    """
    SimpleJWT's TokenObtainPairView issuing tokens with the ``role`` claim.
    """

    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            logger.info("Issued token pair for user %s", response.data.get("user_id"))
        return response
