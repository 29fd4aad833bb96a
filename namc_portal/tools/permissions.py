from rest_framework import permissions

from accounts.permissions import is_portal_admin


class IsReservationOwnerOrPortalAdmin(permissions.BasePermission):
    message = "Only the member who made this reservation can manage it."

    def has_object_permission(self, request, view, obj):
        return obj.member_id == request.user.id or is_portal_admin(request.user)


class IsPortalAdminOrReadOnly(permissions.BasePermission):
    """Any signed-in member reads; admins write."""

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return is_portal_admin(request.user)
