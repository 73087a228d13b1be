from dataclasses import dataclass


@dataclass(slots=True)
class SupervisorConfig:
    base_port: int = 8081  # the router itself defaults to 8080
    host: str = "localhost"
    binary_name: str = "agentbaker"
    port_flag: str = "-port"
    extract_dir: str | None = None  # private temp dir when unset
    launch_timeout: float = 60.0
    ready_timeout: float | None = None  # None disables the readiness probe
    stop_timeout: float = 5.0


@dataclass(slots=True)
class ProxyConfig:
    connect_timeout: float = 5.0
    read_timeout: float = 30.0


@dataclass(slots=True)
class ServerConfig:
    host: str = "localhost"
    port: int = 8080
    timeout: float = 30.0  # per-socket read/write timeout for inbound connections

    @classmethod
    def from_addr(cls, addr: str, timeout: float = 30.0) -> "ServerConfig":
        host, sep, port = addr.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"address must be in the form host:port, got {addr!r}")
        return cls(host=host or "0.0.0.0", port=int(port), timeout=timeout)
