from rest_framework.permissions import BasePermission

from accounts.permissions import is_portal_admin

MEDIATORS_GROUP = 'Mediators'


def is_mediator(user):
    if not user.is_authenticated:
        return False
    return is_portal_admin(user) or user.groups.filter(name=MEDIATORS_GROUP).exists()


class IsMediator(BasePermission):
    """
    Allows access only to users in the 'Mediators' group (and portal admins).
    """
    message = "Mediator access required."

    def has_permission(self, request, view):
        return is_mediator(request.user)


class IsDisputeParticipantOrMediator(BasePermission):
    """
    Allows access only to the dispute's submitter, respondent, or a mediator.
    This permission is checked against a single PaymentDispute object.
    """
    def has_object_permission(self, request, view, obj):
        return obj.is_participant(request.user) or is_mediator(request.user)
