"""Error taxonomy shared by the supervisor and the router.

Startup errors (``DiscoveryError``, ``LaunchError``) abort the process. The
remaining errors are local to one request and carry the HTTP status the server
answers with.
"""

from __future__ import annotations


class BakedBakerError(Exception):
    """Base class for every error raised by bakedbaker."""

    status_code = 500


class DiscoveryError(BakedBakerError):
    """The asset bundle is unreadable, has a bad version name, or lacks a payload."""


class LaunchError(BakedBakerError):
    """An instance payload could not be extracted or its process could not start."""

    def __init__(self, version: str, message: str) -> None:
        super().__init__(f"could not launch agent baker version {version}: {message}")
        self.version = version


class MalformedRequestError(BakedBakerError):
    """The request body is invalid as both an envelope and a bare request."""

    status_code = 400


class VersionNotFoundError(BakedBakerError):
    status_code = 404

    def __init__(self, version: str) -> None:
        super().__init__(f"agent baker version {version} is not available")
        self.version = version


class UpstreamUnavailableError(BakedBakerError):
    """The backend instance could not be reached."""

    status_code = 503


class UpstreamErrorStatus(BakedBakerError):
    """The backend instance answered with a non-success status."""

    status_code = 502

    def __init__(self, version: str, upstream_status: int) -> None:
        super().__init__(
            f"agent baker version {version} returned a non-success status code: {upstream_status}"
        )
        self.version = version
        self.upstream_status = upstream_status
