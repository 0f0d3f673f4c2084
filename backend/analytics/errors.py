from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for errors raised by the analytics engine."""


class ValidationError(AnalyticsError):
    """Raised for malformed filter input before any network call is made."""


class FetchError(AnalyticsError):
    """Raised when a data-source call fails; the cache is left untouched."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.detail
        return f"{self.detail} (status {self.status_code})"
