"""HTTP error taxonomy.

Every class is an ``HTTPException`` so handlers can ``raise`` them the same way
they raise plain ``HTTPException``; ``main.py`` renders them as
``{"message": ...}``.
"""

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(status_code=self.status_code, detail=message)

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(ApiError):
    status_code = 400


class ConflictError(ApiError):
    status_code = 400


class AuthenticationError(ApiError):
    status_code = 401

    def __init__(self, message: str):
        super().__init__(message)
        self.headers = {"WWW-Authenticate": "Bearer"}


class AuthorizationError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class InternalError(ApiError):
    status_code = 500
