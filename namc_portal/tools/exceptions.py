from rest_framework.exceptions import APIException
from rest_framework import status


class ToolLendingError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The tool lending request could not be processed."
    default_code = 'tool_lending_error'


class ToolUnavailable(ToolLendingError):
    default_detail = "This tool is not available for reservation."
    default_code = 'tool_unavailable'


class InvalidTransition(ToolLendingError):
    default_detail = "Invalid status transition."
    default_code = 'invalid_transition'


class SchedulingConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The tool is already booked for the requested dates."
    default_code = 'scheduling_conflict'

    def __init__(self, conflicts, detail=None):
        super().__init__(detail)
        self.conflicts = conflicts
        self.detail = {'detail': str(self.detail), 'conflicts': conflicts}
