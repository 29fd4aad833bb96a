from rest_framework import status
from rest_framework.exceptions import APIException


class EscrowError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Escrow operation failed."
    default_code = 'escrow_error'


class InsufficientBalance(EscrowError):
    default_detail = "Insufficient escrow balance."
    default_code = 'insufficient_balance'


class EscrowLocked(EscrowError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Escrow is locked due to an open dispute."
    default_code = 'escrow_locked'


class InvalidStatusTransition(EscrowError):
    default_detail = "Invalid status transition."
    default_code = 'invalid_status_transition'
