"""Request routing from RPC bodies to agent baker instances."""

from .mapping import VersionMapping, pick_latest
from .payloads import ENDPOINTS, NodeBootstrapDataRequest, SigImageConfigRequest
from .router import ResolvedRequest, VersionedRequest, encode_payload, resolve_request
from .service import ProxyLayer, RouteDecision, UpstreamResponse

__all__ = [
    "VersionMapping",
    "pick_latest",
    "ENDPOINTS",
    "NodeBootstrapDataRequest",
    "SigImageConfigRequest",
    "ResolvedRequest",
    "VersionedRequest",
    "encode_payload",
    "resolve_request",
    "ProxyLayer",
    "RouteDecision",
    "UpstreamResponse",
]
