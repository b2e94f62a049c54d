# permissions.py
from rest_framework import permissions


class RolePermission(permissions.BasePermission):
    """
    Allow the request when the caller's local role is in the view's
    ``allowed_roles``.
    """
    message = 'You do not have permission to perform this action'

    def has_permission(self, request, view):
        user = request.user
        if not user or not getattr(user, 'is_authenticated', False):
            return False
        if not getattr(user, 'is_active', True):
            return False
        return user.role in getattr(view, 'allowed_roles', [])
