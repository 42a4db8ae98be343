"""Exception types mapped onto HTTP status codes."""

from __future__ import annotations


class CineMoodError(Exception):
    """Base error carrying the HTTP status it should be reported with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(CineMoodError):
    """A required field is missing or malformed."""

    status_code = 400


class NotFoundError(CineMoodError):
    status_code = 404


class ConfigurationError(CineMoodError):
    """A credential required by the requested operation is not configured."""

    status_code = 500


class UpstreamError(CineMoodError):
    """A third-party API call failed or returned an unusable payload."""

    status_code = 500


class PersistenceError(CineMoodError):
    """The relational store rejected a read or write."""

    status_code = 500
