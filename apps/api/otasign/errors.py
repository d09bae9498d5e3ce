"""
OTASign error taxonomy.

Every request-time failure raised by the pipeline derives from
OTASignError and carries the HTTP status and the client-facing message.
The exception handler in main.py turns them into ``{"message": ...}``
JSON bodies. ConfigError is the only startup-time error.
"""


class OTASignError(Exception):
    """Base class for request-time pipeline errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OTASignError):
    """Malformed or missing request data."""

    status_code = 400


class AuthorizationError(OTASignError):
    """Device identifier not on the allow-list."""

    status_code = 403


class SigningError(OTASignError):
    """Signer could not be run, failed, or reported no bundle metadata."""

    status_code = 500


class StorageError(OTASignError):
    """Filesystem read/write failure."""

    status_code = 500


class ConfigError(RuntimeError):
    """Missing or invalid environment configuration. Raised at startup."""
