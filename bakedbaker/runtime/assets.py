from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

from bakedbaker.errors import DiscoveryError
from bakedbaker.types import Version

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssetEntry:
    version: Version
    payload: bytes

    def __repr__(self) -> str:
        return f"AssetEntry(version={self.version!s}, payload=<{len(self.payload)} bytes>)"


class AssetSource(ABC):
    """Read-only bundle of version directories, each holding one executable payload."""

    @abstractmethod
    def list_dirs(self) -> list[str]:
        """Names of the top-level directories. Plain files are not returned."""

    @abstractmethod
    def read_file(self, dirname: str, filename: str) -> bytes:
        pass


class DirectoryAssetSource(AssetSource):
    """Bundle laid out in a directory on the local filesystem."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def list_dirs(self) -> list[str]:
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def read_file(self, dirname: str, filename: str) -> bytes:
        return (self.root / dirname / filename).read_bytes()


class PackageAssetSource(AssetSource):
    """Bundle shipped as package data, ``bakedbaker/binaries`` by default."""

    def __init__(self, package: str = "bakedbaker", subdir: str = "binaries") -> None:
        self.package = package
        self.subdir = subdir

    def _root(self) -> Traversable:
        return resources.files(self.package).joinpath(self.subdir)

    def list_dirs(self) -> list[str]:
        return sorted(p.name for p in self._root().iterdir() if p.is_dir())

    def read_file(self, dirname: str, filename: str) -> bytes:
        return self._root().joinpath(dirname, filename).read_bytes()


def discover(source: AssetSource, binary_name: str = "agentbaker") -> list[AssetEntry]:
    """Read every version directory of ``source``, ordered by directory name.

    Any bad entry aborts discovery: a malformed bundle is a packaging mistake,
    not something to serve around.
    """
    try:
        dirnames = source.list_dirs()
    except OSError as exc:
        raise DiscoveryError(f"could not read the versions directory: {exc}") from exc

    entries: list[AssetEntry] = []
    for name in dirnames:
        try:
            version = Version(name)
        except ValueError as exc:
            raise DiscoveryError(f"asset bundle had a version that did not validate: {exc}") from exc

        try:
            payload = source.read_file(name, binary_name)
        except OSError as exc:
            raise DiscoveryError(
                f"could not read {binary_name} file for version({version}): {exc.strerror or exc}"
            ) from exc
        entries.append(AssetEntry(version=version, payload=payload))

    LOGGER.info("Discovered agent baker versions: %s", ", ".join(e.version for e in entries) or "<none>")
    return entries
