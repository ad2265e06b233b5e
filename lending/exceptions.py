from fastapi import status


class LendingError(Exception):
    """Precondition failure reported to the caller; never retried automatically."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(LendingError, ValueError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(LendingError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(LendingError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(LendingError):
    status_code = status.HTTP_409_CONFLICT
