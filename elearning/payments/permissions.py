from rest_framework.permissions import BasePermission

from ..users.models import is_platform_admin


class IsPlatformAdmin(BasePermission):
    """Erlaubt Zugriff nur für Staff-Accounts und Benutzer mit der Rolle ``admin``."""

    def has_permission(self, request, view):
        return is_platform_admin(request.user)
