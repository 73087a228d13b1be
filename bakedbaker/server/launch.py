from __future__ import annotations

import logging

from bakedbaker.config import ProxyConfig, ServerConfig, SupervisorConfig
from bakedbaker.proxy.service import ProxyLayer
from bakedbaker.runtime import AssetSource, Supervisor
from bakedbaker.server.http_server import run_proxy_server

LOGGER = logging.getLogger(__name__)


def run_proxy_endpoint(
    source: AssetSource,
    server_cfg: ServerConfig,
    supervisor_cfg: SupervisorConfig | None = None,
    proxy_cfg: ProxyConfig | None = None,
) -> None:
    """Start every bundled agent baker version, then serve until interrupted.

    Discovery and launch errors propagate; the instances are stopped on the
    way out either way.
    """
    supervisor = Supervisor(source, supervisor_cfg)
    proxy: ProxyLayer | None = None
    try:
        mapping = supervisor.start()
        proxy = ProxyLayer(
            mapping,
            proxy_cfg or ProxyConfig(read_timeout=server_cfg.timeout),
        )
        LOGGER.info(
            "bakedbaker listening on http://%s:%d with versions=%s",
            server_cfg.host,
            server_cfg.port,
            ",".join(mapping.versions()) or "<none>",
        )
        run_proxy_server(proxy=proxy, host=server_cfg.host, port=server_cfg.port, timeout=server_cfg.timeout)
    finally:
        if proxy is not None:
            proxy.close()
        supervisor.shutdown()
