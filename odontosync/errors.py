"""
Domain errors raised by the services layer.

The API maps each class to an HTTP status (see api_main.py); the CLI prints
the message.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400


class PermissionDeniedError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class ExternalServiceError(ServiceError):
    status_code = 502
