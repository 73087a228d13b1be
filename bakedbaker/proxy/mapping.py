from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Mapping

from bakedbaker.types import LATEST, Version

if TYPE_CHECKING:
    from bakedbaker.runtime.instance import InstanceRecord


def pick_latest(versions: Iterable[Version]) -> Version | None:
    """Version that ``latest`` resolves to.

    A bundle entry literally named ``latest`` wins; otherwise the highest
    release tag, compared numerically.
    """
    candidates = list(versions)
    for version in candidates:
        if version.is_latest:
            return version
    if not candidates:
        return None
    return max(candidates, key=lambda v: (v.release_key(), str(v)))


@dataclass(frozen=True, slots=True)
class VersionMapping:
    """Immutable version -> ``http://host:port`` table built once at startup."""

    bases: Mapping[Version, str]
    latest: Version | None

    @classmethod
    def from_bases(cls, bases: Mapping[str, str]) -> "VersionMapping":
        table = {Version(v): base for v, base in bases.items()}
        return cls(bases=MappingProxyType(table), latest=pick_latest(table))

    @classmethod
    def from_records(cls, records: Iterable[InstanceRecord]) -> "VersionMapping":
        table: dict[Version, str] = {}
        for record in records:
            if record.version in table:
                raise ValueError(f"duplicate instance for version {record.version}")
            table[record.version] = record.base
        return cls(bases=MappingProxyType(table), latest=pick_latest(table))

    def base(self, version: str) -> str | None:
        """Base address for ``version``, or None if no instance serves it."""
        if version == LATEST:
            if self.latest is None:
                return None
            return self.bases[self.latest]
        return self.bases.get(version)

    def versions(self) -> list[Version]:
        return sorted(self.bases, key=str)

    def __contains__(self, version: object) -> bool:
        return isinstance(version, str) and self.base(version) is not None

    def __len__(self) -> int:
        return len(self.bases)
