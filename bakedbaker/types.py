from __future__ import annotations

import re

_RELEASE_TAG = re.compile(r"v?(\d+)\.(\d+)\.(\d+)")


class Version(str):
    """An agent baker release tag such as ``1.2.0`` or ``v0.20230216.5``, or ``latest``."""

    __slots__ = ()

    def __new__(cls, value: str) -> "Version":
        if not isinstance(value, str):
            raise TypeError(f"version must be a string, got {type(value).__name__}")
        if value != "latest" and _RELEASE_TAG.fullmatch(value) is None:
            raise ValueError(f"invalid version {value!r}: expected MAJOR.MINOR.PATCH or 'latest'")
        return super().__new__(cls, value)

    @property
    def is_latest(self) -> bool:
        return str(self) == "latest"

    def release_key(self) -> tuple[int, int, int]:
        match = _RELEASE_TAG.fullmatch(self)
        if match is None:
            raise ValueError(f"{self!s} is not a release tag")
        major, minor, patch = match.groups()
        return int(major), int(minor), int(patch)


LATEST = Version("latest")
