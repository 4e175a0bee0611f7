"""Exception hierarchy for capgate."""


class CapGateError(Exception):
    """Base exception for all capgate errors."""

    status_code = 500


class AccessDeniedError(CapGateError):
    """Raised when a request's Referer/Origin is missing or not allowed."""

    status_code = 403


class BadRequestError(CapGateError):
    """Raised when a request body is malformed or missing required fields."""

    status_code = 400


class EngineError(CapGateError):
    """Raised when the challenge engine fails."""


class StorageError(CapGateError):
    """Raised when a TTL store operation fails."""


class ConfigError(CapGateError):
    """Raised when a required binding or setting is missing."""
