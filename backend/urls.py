"""
URL configuration for the learning platform backend.

- /admin/: Django admin (Jazzmin)
- /api/elearning/: Tokens and payments, see elearning/urls.py
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/elearning/", include("elearning.urls")),
]
