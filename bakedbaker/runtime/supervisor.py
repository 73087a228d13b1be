from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from bakedbaker.config import SupervisorConfig
from bakedbaker.errors import LaunchError
from bakedbaker.proxy.mapping import VersionMapping
from bakedbaker.types import Version

from .assets import AssetEntry, AssetSource, discover
from .instance import (
    InstanceRecord,
    PortAllocator,
    Spawner,
    default_spawner,
    extract_payload,
    start_instance,
    stop_instance,
    wait_for_port,
)

LOGGER = logging.getLogger(__name__)


class Supervisor:
    """Turns an asset bundle into running agent baker instances.

    The router never sees process handles, only the ``VersionMapping`` this
    class publishes. Instances are started once and not monitored; ``poll``
    reports the ones that have exited.
    """

    def __init__(
        self,
        source: AssetSource,
        cfg: SupervisorConfig | None = None,
        spawner: Spawner | None = None,
        allocator: PortAllocator | None = None,
    ) -> None:
        self.source = source
        self.cfg = cfg or SupervisorConfig()
        self.spawner = spawner or default_spawner
        self.allocator = allocator or PortAllocator(self.cfg.base_port)
        self.records: list[InstanceRecord] = []
        self._workdir: Path | None = None
        self._owns_workdir = False

    def discover(self) -> list[AssetEntry]:
        return discover(self.source, binary_name=self.cfg.binary_name)

    def launch(self, entries: list[AssetEntry]) -> list[InstanceRecord]:
        """Start every entry in parallel; all of them start or none stay running.

        Workers still busy when ``launch_timeout`` expires are not interrupted.
        Any instance they start afterwards is stopped as soon as it is returned,
        and interpreter exit waits for them to finish.
        """
        workdir = self._ensure_workdir()
        # Ports are taken in entry order so version -> port is stable across runs.
        plan = [(entry, self.allocator.allocate()) for entry in entries]
        if not plan:
            return []

        executor = ThreadPoolExecutor(max_workers=len(plan), thread_name_prefix="bakedbaker-launch")
        futures: dict[Future, AssetEntry] = {
            executor.submit(self._launch_one, workdir, entry, port): entry for entry, port in plan
        }
        try:
            _, pending = wait(futures, timeout=self.cfg.launch_timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        # A worker still running past the deadline may yet spawn a process; stop it when it does.
        for future in pending:
            future.add_done_callback(self._stop_abandoned)

        records: list[InstanceRecord] = []
        failure: LaunchError | None = None
        for future, entry in futures.items():
            if future in pending:
                failure = failure or LaunchError(
                    entry.version, f"timed out after {self.cfg.launch_timeout:.1f}s"
                )
                continue
            exc = future.exception()
            if exc is not None:
                if failure is None:
                    failure = exc if isinstance(exc, LaunchError) else LaunchError(entry.version, str(exc))
                continue
            records.append(future.result())

        if failure is not None:
            for record in records:
                stop_instance(record, timeout=self.cfg.stop_timeout)
            raise failure

        self.records.extend(records)
        return records

    def _launch_one(self, workdir: Path, entry: AssetEntry, port: int) -> InstanceRecord:
        try:
            binary = extract_payload(workdir, entry.version, entry.payload)
        except OSError as exc:
            raise LaunchError(
                entry.version, f"could not write agentbaker binary file: {exc.strerror or exc}"
            ) from exc

        try:
            process = start_instance(binary, port, port_flag=self.cfg.port_flag, spawner=self.spawner)
        except OSError as exc:
            raise LaunchError(entry.version, f"could not start agentbaker binary: {exc.strerror or exc}") from exc

        record = InstanceRecord(
            version=entry.version,
            port=port,
            base=f"http://{self.cfg.host}:{port}",
            process=process,
        )
        LOGGER.info("Started agent baker %s on port %d (pid %s)", entry.version, port, record.pid)

        if self.cfg.ready_timeout is not None:
            try:
                wait_for_port(self.cfg.host, port, process, self.cfg.ready_timeout)
            except RuntimeError as exc:
                stop_instance(record, timeout=self.cfg.stop_timeout)
                raise LaunchError(entry.version, str(exc)) from exc
        return record

    def _stop_abandoned(self, future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        record: InstanceRecord = future.result()
        LOGGER.warning(
            "Agent baker %s started after the launch timeout, stopping pid %s", record.version, record.pid
        )
        try:
            stop_instance(record, timeout=self.cfg.stop_timeout)
        except OSError:
            LOGGER.exception("Failed to stop agent baker %s", record.version)

    @staticmethod
    def build_mapping(records: list[InstanceRecord]) -> VersionMapping:
        return VersionMapping.from_records(records)

    def start(self) -> VersionMapping:
        """Discover, launch and publish the mapping. Blocks until every instance started."""
        records = self.launch(self.discover())
        mapping = self.build_mapping(records)
        LOGGER.info(
            "Published version mapping: %s (latest -> %s)",
            ", ".join(f"{v}={mapping.base(v)}" for v in mapping.versions()) or "<empty>",
            mapping.latest,
        )
        return mapping

    def poll(self) -> list[Version]:
        """Versions whose process has exited since launch."""
        exited: list[Version] = []
        for record in self.records:
            poll = getattr(record.process, "poll", None)
            if poll is not None and poll() is not None:
                exited.append(record.version)
        return exited

    def shutdown(self) -> None:
        for record in self.records:
            try:
                stop_instance(record, timeout=self.cfg.stop_timeout)
            except OSError:
                LOGGER.exception("Failed to stop agent baker %s", record.version)
        self.records.clear()
        if self._workdir is not None and self._owns_workdir:
            shutil.rmtree(self._workdir, ignore_errors=True)
        self._workdir = None

    def _ensure_workdir(self) -> Path:
        if self._workdir is None:
            if self.cfg.extract_dir is not None:
                self._workdir = Path(self.cfg.extract_dir)
                self._workdir.mkdir(parents=True, exist_ok=True)
                self._owns_workdir = False
            else:
                self._workdir = Path(tempfile.mkdtemp(prefix="bakedbaker-"))
                self._owns_workdir = True
        return self._workdir
