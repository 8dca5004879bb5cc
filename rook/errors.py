"""Request failures and the HTTP responses they map to."""

from __future__ import annotations


class RookError(Exception):
    """Base class for failures that end a request with an error response."""

    status_code = 400
    reason = "bad request"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.reason)
        self.detail = detail


class MissingHeader(RookError):
    """A required header was not sent."""

    reason = "missing header"


class MalformedHeader(RookError):
    """A header was present but could not be parsed into the expected shape."""

    reason = "malformed header"


class BodyTooLarge(RookError):
    reason = "body too large"


class BodyReadFailed(RookError):
    reason = "body read error"


class NoRoute(RookError):
    """No subscriber listens for this path or event."""

    reason = "bad route"


class MalformedBody(RookError):
    reason = "malformed body"


class SignatureMismatch(RookError):
    """Subscribers matched but none of their secrets verified the body."""

    reason = "signature mismatch"


class DispatchFailed(RookError):
    """At least one signature verified but every process launch failed."""

    status_code = 500
    reason = ""


__all__ = [
    "BodyReadFailed",
    "BodyTooLarge",
    "DispatchFailed",
    "MalformedBody",
    "MalformedHeader",
    "MissingHeader",
    "NoRoute",
    "RookError",
    "SignatureMismatch",
]
