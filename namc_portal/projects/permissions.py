from rest_framework.permissions import BasePermission

from accounts.permissions import is_portal_admin


class IsOwnerOrPortalAdmin(BasePermission):
    def has_object_permission(self, request, view, obj):
        return obj.owner_id == request.user.id or is_portal_admin(request.user)


class IsProjectParticipantOrPortalAdmin(BasePermission):
    """
    Allows access only to the project's owner, its assigned contractor or a portal admin.
    """
    def has_object_permission(self, request, view, obj):
        return obj.is_participant(request.user) or is_portal_admin(request.user)
