from __future__ import annotations

import argparse
import logging
import sys

from bakedbaker.config import ServerConfig, SupervisorConfig
from bakedbaker.errors import DiscoveryError, LaunchError
from bakedbaker.proxy.mapping import pick_latest
from bakedbaker.runtime import AssetSource, DirectoryAssetSource, PackageAssetSource, discover
from bakedbaker.server.launch import run_proxy_endpoint

LOGGER = logging.getLogger("bakedbaker")


def _asset_source(path: str | None) -> AssetSource:
    if path is None:
        return PackageAssetSource()
    return DirectoryAssetSource(path)


def run_versions(assets: str | None, binary_name: str) -> None:
    entries = discover(_asset_source(assets), binary_name=binary_name)
    latest = pick_latest(e.version for e in entries)
    for entry in entries:
        marker = "  (latest)" if entry.version == latest else ""
        print(f"{entry.version}{marker}")


def run_serve(args: argparse.Namespace, server_cfg: ServerConfig) -> None:
    supervisor_cfg = SupervisorConfig(
        base_port=args.base_port,
        binary_name=args.binary_name,
        extract_dir=args.extract_dir,
        launch_timeout=args.launch_timeout,
        ready_timeout=args.ready_timeout,
    )
    run_proxy_endpoint(_asset_source(args.assets), server_cfg, supervisor_cfg)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Route agent baker RPCs to the matching bundled release")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    def add_bundle_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--assets", default=None, help="Bundle directory; defaults to the packaged binaries")
        p.add_argument("--binary-name", default="agentbaker")

    p_serve = sub.add_parser("serve", help="Launch every bundled version and serve requests")
    add_bundle_args(p_serve)
    p_serve.add_argument("--addr", default="localhost:8080", help="address to listen on")
    p_serve.add_argument("--base-port", type=int, default=8081, help="first port handed to instances")
    p_serve.add_argument("--extract-dir", default=None)
    p_serve.add_argument("--timeout", type=float, default=30.0, help="read/write timeout in seconds")
    p_serve.add_argument("--launch-timeout", type=float, default=60.0)
    p_serve.add_argument(
        "--ready-timeout",
        type=float,
        default=None,
        help="Wait for each instance to accept connections before serving",
    )

    p_versions = sub.add_parser("versions", help="List the bundled versions without launching them")
    add_bundle_args(p_versions)
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "serve":
            try:
                server_cfg = ServerConfig.from_addr(args.addr, timeout=args.timeout)
            except ValueError as exc:
                parser.error(str(exc))
            run_serve(args, server_cfg)
        elif args.command == "versions":
            run_versions(args.assets, args.binary_name)
    except (DiscoveryError, LaunchError) as exc:
        LOGGER.error("startup failed: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        LOGGER.info("interrupted, shutting down")


if __name__ == "__main__":
    main()
