"""Domain errors."""

from __future__ import annotations

from dataclasses import dataclass


class PinboardError(RuntimeError):
    """Base class for failures talking to the Pinboard API."""


@dataclass(eq=False, slots=True)
class NetworkError(PinboardError):
    """Transport failure or client-side timeout."""

    method: str
    url: str
    reason: str

    def __str__(self) -> str:
        return f"Network error for {self.method} {self.url}: {self.reason}"


@dataclass(eq=False, slots=True)
class AuthError(PinboardError):
    """The API token was rejected (or is missing)."""

    status_code: int
    url: str

    def __str__(self) -> str:
        return f"Pinboard rejected the API token ({self.status_code}) for {self.url}"


@dataclass(eq=False, slots=True)
class ServerError(PinboardError):
    """Raised when the Pinboard API returns a non-success response."""

    status_code: int
    method: str
    url: str
    response_text: str

    def __str__(self) -> str:
        return (
            f"Pinboard API error {self.status_code} for {self.method} {self.url}: "
            f"{self.response_text}"
        )


@dataclass(eq=False, slots=True)
class LogicalFailure(ServerError):
    """HTTP 200, but the payload's ``result_code`` was not ``done``."""

    result_code: str = ""

    def __str__(self) -> str:
        return f"Pinboard refused {self.method} {self.url}: {self.result_code}"


@dataclass(eq=False, slots=True)
class DecodeError(PinboardError):
    """The response body could not be decoded into the expected shape."""

    url: str
    detail: str

    def __str__(self) -> str:
        return f"Malformed response from {self.url}: {self.detail}"


class DateParseError(ValueError):
    """A remote timestamp was not valid ISO-8601."""


class CredentialError(ValueError):
    """No usable ``username:secret`` token is available."""


class BookmarkNotFound(LookupError):
    """No cached bookmark has the requested remote id."""
