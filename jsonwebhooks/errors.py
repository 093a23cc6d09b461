"""Error types raised by the poll/dispatch pipeline."""

from __future__ import annotations


class JsonWebhooksError(Exception):
    """Base class for every error raised by jsonwebhooks."""


class ConfigurationError(JsonWebhooksError):
    """Configuration file missing, unreadable or invalid. Fatal at startup."""


class FetchError(JsonWebhooksError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(JsonWebhooksError, ValueError):
    """Invalid JSON in a query response or in a body fragment."""


class ExtractError(JsonWebhooksError):
    """Malformed JSONPath expression."""


class DispatchError(JsonWebhooksError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text
