"""Shared plumbing for operations on this node's pool."""
from typing import List, Optional, Tuple

from strata.core import zcmd
from strata.core.errors import CommandError
from strata.core.events import EventRecorder
from strata.core.executor import Executor
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.disk import BlockDevice
from strata.models.topology import Topology

logger = get_logger(__name__)


class PoolEngine:
    """Executes pool commands for one node's pool.

    Every pool operation module works through an engine so that the pool
    name, device directory and cache file are configured in one place.
    """

    def __init__(
        self,
        store: ObjectStore,
        executor: Executor,
        recorder: EventRecorder,
        pool_name: str,
        dev_dir: str = "/dev/disk/by-id",
        cache_file: str = "/var/lib/strata/pool.cache",
    ):
        self.store = store
        self.executor = executor
        self.recorder = recorder
        self.pool_name = pool_name
        self.dev_dir = dev_dir
        self.cache_file = cache_file

    def run(self, command: str) -> str:
        return self.executor.execute(command).decode(errors="replace")

    def exists(self) -> bool:
        """True when the pool answers a property query with its name.

        An empty answer, as given by a mock executor, counts as absent.
        """
        try:
            output = self.run(zcmd.pool_property_get(self.pool_name))
        except CommandError:
            return False
        return bool(output.strip())

    def check_importable(self) -> Tuple[str, bool]:
        """Scan devices for a pool signature.

        Returns the scan output and whether it names this pool. The device
        directory is scanned first, then the default search path.
        """
        output = ""
        for command in (zcmd.pool_import_scan(self.dev_dir), zcmd.pool_import_scan()):
            try:
                output = self.run(command)
            except CommandError as e:
                # zpool import exits non-zero when nothing is importable
                logger.debug(f"Import scan '{command}' found nothing: {e}")
                continue
            if self.pool_name in output:
                return output, True
        return output, False

    def topology(self) -> Topology:
        raw = self.executor.execute(zcmd.pool_dump(self.pool_name))
        return Topology.from_json(raw)

    def device_paths(self, block_device_name: str) -> List[str]:
        """All paths a block device is reachable by, stable links first."""
        return self.store.get(BlockDevice, block_device_name).device_paths()

    def device_path(self, block_device_name: str) -> str:
        return self.device_paths(block_device_name)[0]

    def optional_topology(self) -> Optional[Topology]:
        try:
            return self.topology()
        except (CommandError, ValueError) as e:
            logger.error(f"Failed to get topology of pool {self.pool_name}: {e}")
            return None
