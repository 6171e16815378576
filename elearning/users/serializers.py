"""
E-Learning User Management Serializers

This module provides the JWT serializer used by the token endpoints.

Serializers:
- CustomTokenObtainPairSerializer: JWT pair with role and user metadata

The ``role`` claim is what the ingress rate limiter reads to pick a caller's
quota tier, so every issued access token carries it.

Author: DSP Development Team
Version: 1.0.0
"""

from typing import Dict, Any
from django.contrib.auth.models import User
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from .models import Profile


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Enhanced JWT token serializer with user metadata integration.

    Token Payload Includes:
    - username: User identification
    - role: Platform role (student, instructor, admin)
    - is_staff: Staff privileges flag
    """

    @classmethod
    def get_token(cls, user: User) -> RefreshToken:
        """
        Generate enhanced JWT token with user metadata.

        Args:
            user: Authenticated user instance

        Returns:
            RefreshToken with additional user information
        """
        token = super().get_token(user)

        profile, _created = Profile.objects.get_or_create(user=user)

        token['username'] = user.username
        token['role'] = profile.role
        token['is_staff'] = user.is_staff

        return token

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate authentication credentials and enhance response.

        Args:
            attrs: Authentication credentials

        Returns:
            Token pair plus user metadata for frontend convenience
        """
        data = super().validate(attrs)

        data.update({
            'user_id': self.user.id,
            'username': self.user.username,
            'role': self.user.profile.role,
            'is_staff': self.user.is_staff,
        })

        return data
