"""Closed set of error kinds raised by the conversion pipeline.

Services raise these with machine-readable context only; the transport layer
owns the mapping from kind to status code and user-facing message.
"""

from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    """Tags for every failure the service can report."""
    missing_file = "MissingFileError"
    unsupported_type = "UnsupportedTypeError"
    size_limit = "SizeLimitError"
    invalid_identifier = "InvalidIdentifierError"
    conversion = "ConversionError"
    storage_access = "StorageAccessError"
    not_found = "NotFoundError"
    permission_denied = "PermissionError"


class ServiceError(Exception):
    kind: ErrorKind = ErrorKind.conversion

    def __init__(self, **context: Any) -> None:
        self.context: Dict[str, Any] = context
        super().__init__(self.kind.value, context)

    def __str__(self) -> str:
        if not self.context:
            return self.kind.value
        details = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.kind.value}({details})"


class ValidationError(ServiceError):
    """Bad client input, rejected before any side effect."""


class MissingFileError(ValidationError):
    kind = ErrorKind.missing_file


class UnsupportedTypeError(ValidationError):
    kind = ErrorKind.unsupported_type


class SizeLimitError(ValidationError):
    kind = ErrorKind.size_limit


class InvalidIdentifierError(ValidationError):
    kind = ErrorKind.invalid_identifier


class ConversionError(ServiceError):
    kind = ErrorKind.conversion


class StorageAccessError(ServiceError):
    kind = ErrorKind.storage_access


class NotFoundError(ServiceError):
    kind = ErrorKind.not_found


class ArtifactPermissionError(ServiceError):
    kind = ErrorKind.permission_denied
