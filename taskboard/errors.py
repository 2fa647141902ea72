from fastapi import status


class TaskboardError(Exception):
    """
    Base class for errors raised by the service layer.
    The HTTP layer maps each subclass to its status code.
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(TaskboardError):
    """Missing or malformed input (title, deadline, email, ...)."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(TaskboardError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TaskboardError):
    """A unique constraint would be violated, e.g. a duplicate email."""
    status_code = status.HTTP_409_CONFLICT


class StorageError(TaskboardError):
    """
    The database failed. The detail shown to clients is always generic;
    the underlying cause is only logged.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str = "Internal storage error"):
        super().__init__(detail)
