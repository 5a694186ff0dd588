"""Domain errors raised by the pipeline stages.

Each error carries the HTTP status the API layer maps it to. Clients only ever
see ``{"error": message}`` plus that status.
"""

from __future__ import annotations


class StudioError(Exception):
    """Base class for pipeline failures."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputError(StudioError):
    """A required identifier or parameter is missing or malformed."""

    status_code = 400


class AuthError(StudioError):
    """Missing, malformed or unverifiable bearer token."""

    status_code = 401


class NotFoundError(StudioError):
    """A referenced entity does not exist."""

    status_code = 404


class ExtractionError(StudioError):
    """The model reply held no usable JSON object."""


class UpstreamError(StudioError):
    """The AI gateway answered with a non-2xx status or an empty reply.

    ``upstream_status`` is the gateway's own status (0 for transport
    failures). The response status stays 500 unless a stage decides to pass a
    rate-limit or credit error through via :meth:`passthrough`.
    """

    def __init__(self, message: str, upstream_status: int = 0) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status

    @property
    def rate_limited(self) -> bool:
        return self.upstream_status == 429

    def passthrough(self, message: str | None = None) -> UpstreamError:
        """Copy of this error that surfaces the upstream status to the client."""
        err = UpstreamError(message or self.message, self.upstream_status)
        err.status_code = self.upstream_status
        return err
