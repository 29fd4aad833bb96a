from rest_framework import permissions


def is_portal_admin(user):
    return bool(user and user.is_authenticated and (user.is_staff or getattr(user, 'member_type', None) == 'admin'))


class IsPortalAdmin(permissions.BasePermission):
    """
    Allows access to staff and to members whose member_type is 'admin'.
    """
    message = "Admin access required."

    def has_permission(self, request, view):
        return is_portal_admin(request.user)
