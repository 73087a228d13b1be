"""Version-aware router in front of bundled agent baker releases."""

from bakedbaker.errors import (
    BakedBakerError,
    DiscoveryError,
    LaunchError,
    MalformedRequestError,
    UpstreamErrorStatus,
    UpstreamUnavailableError,
    VersionNotFoundError,
)
from bakedbaker.types import LATEST, Version

__all__ = [
    "BakedBakerError",
    "DiscoveryError",
    "LaunchError",
    "MalformedRequestError",
    "UpstreamErrorStatus",
    "UpstreamUnavailableError",
    "VersionNotFoundError",
    "LATEST",
    "Version",
]
