"""Online serving components."""

from .http_server import BakedBakerHandler, BakedBakerServer, run_proxy_server
from .launch import run_proxy_endpoint

__all__ = [
    "BakedBakerHandler",
    "BakedBakerServer",
    "run_proxy_server",
    "run_proxy_endpoint",
]
