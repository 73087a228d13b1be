import threading
import time

import pytest

from bakedbaker.config import SupervisorConfig
from bakedbaker.errors import DiscoveryError, LaunchError
from bakedbaker.runtime import DirectoryAssetSource, PortAllocator, Supervisor


def _supervisor(root, spawner, tmp_path, **cfg):
    cfg.setdefault("extract_dir", str(tmp_path / "extracted"))
    return Supervisor(DirectoryAssetSource(root), SupervisorConfig(base_port=8080, **cfg), spawner=spawner)


def test_launch_gives_each_version_its_own_port(make_bundle, spawner, tmp_path):
    sup = _supervisor(make_bundle("1.0.0", "1.1.0", "2.0.0"), spawner, tmp_path)

    records = sup.launch(sup.discover())

    assert [(r.version, r.port) for r in records] == [("1.0.0", 8080), ("1.1.0", 8081), ("2.0.0", 8082)]
    assert len({r.base for r in records}) == 3
    assert sorted(call[2] for call in spawner.calls) == ["8080", "8081", "8082"]


def test_launch_extracts_payloads(make_bundle, spawner, tmp_path):
    sup = _supervisor(make_bundle("1.0.0"), spawner, tmp_path)
    sup.launch(sup.discover())

    binary = tmp_path / "extracted" / "1.0.0"
    assert spawner.calls == [[str(binary), "-port", "8080"]]
    assert b"agentbaker 1.0.0" in binary.read_bytes()


def test_start_publishes_mapping_with_latest(make_bundle, spawner, tmp_path):
    sup = _supervisor(make_bundle("1.0.0", "1.1.0"), spawner, tmp_path)

    mapping = sup.start()

    assert len(mapping) == 2
    assert mapping.base("1.0.0") == "http://localhost:8080"
    assert mapping.base("1.1.0") == "http://localhost:8081"
    assert mapping.base("latest") == "http://localhost:8081"
    assert mapping.base("9.9.9") is None


def test_write_failure_fails_whole_launch(make_bundle, spawner, tmp_path):
    sup = _supervisor(make_bundle("1.0.0", "1.1.0"), spawner, tmp_path)
    # A directory where the 1.1.0 binary should go makes its write fail.
    (tmp_path / "extracted" / "1.1.0").mkdir(parents=True)

    with pytest.raises(LaunchError) as excinfo:
        sup.launch(sup.discover())

    assert excinfo.value.version == "1.1.0"
    assert "could not write agentbaker binary file" in str(excinfo.value)
    assert str(tmp_path) not in str(excinfo.value)
    assert all(p.terminated for p in spawner.processes)
    assert sup.records == []


def test_spawn_failure_names_version(make_bundle, tmp_path):
    def broken_spawner(argv):
        if argv[0].endswith("1.0.0"):
            raise PermissionError(13, "Permission denied")
        return object()

    sup = _supervisor(make_bundle("1.0.0", "1.1.0"), broken_spawner, tmp_path)

    with pytest.raises(LaunchError, match="could not start agentbaker binary: Permission denied") as excinfo:
        sup.launch(sup.discover())
    assert excinfo.value.version == "1.0.0"


def test_launch_timeout(make_bundle, tmp_path):
    release = threading.Event()

    def hanging_spawner(argv):
        release.wait(5)
        return object()

    sup = _supervisor(make_bundle("1.0.0"), hanging_spawner, tmp_path, launch_timeout=0.2)
    try:
        with pytest.raises(LaunchError, match="timed out"):
            sup.launch(sup.discover())
    finally:
        release.set()


def test_instance_started_after_timeout_is_stopped(make_bundle, spawner, tmp_path):
    release = threading.Event()

    def slow_spawner(argv):
        release.wait(5)
        return spawner(argv)

    sup = _supervisor(make_bundle("1.0.0"), slow_spawner, tmp_path, launch_timeout=0.1)
    with pytest.raises(LaunchError, match="timed out"):
        sup.launch(sup.discover())
    release.set()

    deadline = time.monotonic() + 5
    while not (spawner.processes and spawner.processes[0].terminated) and time.monotonic() < deadline:
        time.sleep(0.01)

    assert len(spawner.processes) == 1
    assert spawner.processes[0].terminated
    assert sup.records == []


def test_readiness_probe_failure(make_bundle, spawner, tmp_path):
    def dead_spawner(argv):
        proc = spawner(argv)
        proc.returncode = 2
        return proc

    sup = _supervisor(make_bundle("1.0.0"), dead_spawner, tmp_path, ready_timeout=1.0)

    with pytest.raises(LaunchError, match="exited with code 2"):
        sup.start()


def test_discovery_error_propagates_from_start(make_bundle, spawner, tmp_path):
    root = make_bundle("1.0.0")
    (root / "bogus").mkdir()

    with pytest.raises(DiscoveryError):
        _supervisor(root, spawner, tmp_path).start()
    assert spawner.calls == []


def test_shared_allocator_never_reuses_ports(make_bundle, spawner, tmp_path):
    alloc = PortAllocator(9000)
    root = make_bundle("1.0.0")
    first = Supervisor(DirectoryAssetSource(root), SupervisorConfig(extract_dir=str(tmp_path / "a")), spawner, alloc)
    second = Supervisor(DirectoryAssetSource(root), SupervisorConfig(extract_dir=str(tmp_path / "b")), spawner, alloc)

    assert first.launch(first.discover())[0].port == 9000
    assert second.launch(second.discover())[0].port == 9001


def test_poll_reports_exited_instances(make_bundle, spawner, tmp_path):
    sup = _supervisor(make_bundle("1.0.0", "1.1.0"), spawner, tmp_path)
    sup.start()
    assert sup.poll() == []

    spawner.processes[0].returncode = 1
    assert len(sup.poll()) == 1


def test_shutdown_stops_instances_and_removes_private_dir(make_bundle, spawner):
    sup = Supervisor(DirectoryAssetSource(make_bundle("1.0.0")), SupervisorConfig(), spawner=spawner)
    sup.start()
    workdir = sup._workdir
    assert workdir is not None and workdir.exists()

    sup.shutdown()

    assert spawner.processes[0].terminated
    assert not workdir.exists()
    assert sup.records == []


def test_empty_bundle_gives_empty_mapping(tmp_path, spawner):
    (tmp_path / "bundle").mkdir()
    sup = Supervisor(DirectoryAssetSource(tmp_path / "bundle"), SupervisorConfig(), spawner=spawner)

    mapping = sup.start()

    assert len(mapping) == 0
    assert mapping.base("latest") is None
    sup.shutdown()
