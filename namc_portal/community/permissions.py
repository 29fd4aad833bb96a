from rest_framework import permissions

from accounts.permissions import is_portal_admin


class CanViewCommittee(permissions.BasePermission):
    message = "This committee is private to its members."

    def has_object_permission(self, request, view, obj):
        if obj.is_public or is_portal_admin(request.user):
            return True
        return obj.active_membership(request.user) is not None


class IsCommitteeLeadOrReadOnly(permissions.BasePermission):
    """
    Chairs and members who can moderate edit a committee; only the chair
    (or a portal admin) archives it.
    """
    message = "Only the committee chair or a moderator can change this committee."

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        if obj.chair_id == request.user.id or is_portal_admin(request.user):
            return True
        if request.method == 'DELETE':
            return False
        membership = obj.active_membership(request.user)
        return membership is not None and membership.can_moderate


class CanViewDiscussion(permissions.BasePermission):
    message = "This discussion is private."

    def has_object_permission(self, request, view, obj):
        return is_portal_admin(request.user) or obj.is_visible_to(request.user)


class IsAuthorOrReadOnly(permissions.BasePermission):
    message = "Only the author can edit this discussion."

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.author_id == request.user.id or is_portal_admin(request.user)
