import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def portal_exception_handler(exc, context):
    """
    DRF exception handler for the portal.

    APIException subclasses (validation, auth, permission, not found and the
    escrow/tool domain errors) keep DRF's rendering. Model-level Django
    validation errors become 400s. Anything else is logged with the view
    that raised it and answered with a generic 500 body.
    """
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, 'error_dict') else exc.messages
        return Response({'detail': detail}, status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'unknown view'}: {str(exc)}")
    return Response(
        {'detail': "An unexpected error occurred. Please try again later."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
