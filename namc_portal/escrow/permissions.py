from rest_framework.permissions import BasePermission

from accounts.permissions import is_portal_admin


def _escrow_of(obj):
    # Task payments, milestones and change orders point at their escrow.
    return getattr(obj, 'escrow', obj)


class IsEscrowParticipantOrPortalAdmin(BasePermission):
    message = "Not authorised to access this escrow."

    def has_object_permission(self, request, view, obj):
        return _escrow_of(obj).is_participant(request.user) or is_portal_admin(request.user)


class IsEscrowClientOrPortalAdmin(BasePermission):
    """
    The project owner funds, releases and verifies; admins can act for them.
    """
    message = "Only the project client can manage this escrow."

    def has_object_permission(self, request, view, obj):
        return _escrow_of(obj).project.owner_id == request.user.id or is_portal_admin(request.user)


class IsEscrowContractor(BasePermission):
    message = "Only the project contractor can submit completed work."

    def has_object_permission(self, request, view, obj):
        return _escrow_of(obj).project.contractor_id == request.user.id
