"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these directly; the app turns every one of them into the
``{"success": false, "message": ...}`` envelope with the matching status code.
"""
from fastapi import HTTPException, status


class SwapSevaError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str = None, headers: dict = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class InvalidArgument(SwapSevaError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class Unauthenticated(SwapSevaError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: str = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(SwapSevaError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not authorized to perform this action"


class NotFound(SwapSevaError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class InvalidState(SwapSevaError):
    """The request is well formed but not valid for the current workflow state."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Operation not allowed in the current state"


class Internal(SwapSevaError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
