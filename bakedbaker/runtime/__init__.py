"""Asset discovery and agent baker instance supervision."""

from .assets import AssetEntry, AssetSource, DirectoryAssetSource, PackageAssetSource, discover
from .instance import InstanceRecord, PortAllocator
from .supervisor import Supervisor

__all__ = [
    "AssetEntry",
    "AssetSource",
    "DirectoryAssetSource",
    "PackageAssetSource",
    "discover",
    "InstanceRecord",
    "PortAllocator",
    "Supervisor",
]
