"""
E-Learning Application URL Configuration

This module defines the URL routing structure for the E-Learning application.
Each functional area has its own URL namespace.

URL Structure:
- /api/elearning/token/: Authentication endpoints (JWT token management)
- /api/elearning/payments/: Chapa checkout, verification and instructor payouts

Author: DSP Development Team
Version: 1.0.0
"""

from typing import List
from django.urls import path, include, URLPattern
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from .users import views as user_views
from .payments import urls as payment_urls

app_name = 'elearning'

# --- Authentication and Token Management ---

token_urlpatterns: List[URLPattern] = [
    path('', user_views.CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('verify/', TokenVerifyView.as_view(), name='token_verify'),
]

# --- Main URL Configuration ---

urlpatterns: List[URLPattern] = [
    path('token/', include((token_urlpatterns, 'token'))),
    path('payments/', include((payment_urls.urlpatterns, 'payments'))),
]
