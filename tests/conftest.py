"""Shared test fixtures for Strata tests."""
import json
import shlex
from typing import Dict, List, Optional

import pytest

from strata.core.config import set_config
from strata.core.errors import CommandError
from strata.core.events import EventRecorder
from strata.core.executor import Executor
from strata.core.store import ObjectStore
from strata.models.disk import (
    BlockDevice,
    BlockDeviceClaim,
    BlockDeviceClaimSpec,
    BlockDeviceClaimStatus,
    BlockDeviceSpec,
    BlockDeviceStatus,
    ClaimPhase,
    ClaimState,
)
from strata.models.keys import CLUSTER_FINALIZER, CLUSTER_LABEL, HOSTNAME_LABEL, PREDECESSOR_ANNOTATION
from strata.models.meta import ObjectMeta
from strata.models.node import Node
from strata.models.pool import (
    BlockDeviceRef,
    PoolCluster,
    PoolClusterSpec,
    PoolConfig,
    PoolInstance,
    PoolInstanceSpec,
    PoolSpec,
    RaidGroup,
    RaidType,
)
from strata.models.volume import ReplicaPoolInfo, VolumeConfig, VolumeConfigSpec, VolumePolicySpec
from strata.pool.engine import PoolEngine
from strata.pool.properties import clear_property_cache

POOL_NAME = "strata-pool-a"
DEV_DIR = "/dev/disk/by-id"
CACHE_FILE = "/tmp/strata-test.cache"
VDEV_TYPES = ("mirror", "raidz", "raidz2")
GiB = 1024 ** 3


def dev_link(name: str) -> str:
    return f"{DEV_DIR}/ata-{name}"


def leaf(path: str, state: int = 7) -> Dict:
    stats = [0] * 26
    stats[1] = state
    return {"type": "disk", "path": path, "whole_disk": 1, "vdev_stats": stats, "scan_stats": []}


class FakeZpool(Executor):
    """In-memory stand-in for the zpool and zfs binaries.

    Pools are kept as `zpool dump` style vdev trees. Commands that the
    tests did not expect raise CommandError, as do commands matching a
    prefix registered with fail_on().
    """

    def __init__(self):
        self.pools: Dict[str, Dict] = {}
        self.exported: Dict[str, Dict] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, CommandError] = {}
        self.cache_import_works = True

    # Test helpers

    def fail_on(self, prefix: str, output: str = "simulated failure", returncode: int = 1) -> None:
        self.failures[prefix] = CommandError(prefix, returncode, output)

    def commands(self, prefix: str) -> List[str]:
        return [c for c in self.calls if c.startswith(prefix)]

    def add_pool(self, name: str, top_vdevs: List[Dict], health: str = "ONLINE",
                 size: int = 100 * GiB, allocated: int = 10 * GiB, exported: bool = False) -> Dict:
        pool = {
            "vdevs": top_vdevs,
            "health": health,
            "props": {"allocated": allocated, "size": size},
            "datasets": {"compression": "lz4", "canmount": "off", "readonly": "off", "logicalused": allocated},
        }
        (self.exported if exported else self.pools)[name] = pool
        return pool

    def find(self, pool: str, path: str) -> Optional[Dict]:
        def walk(vdevs):
            for vdev in vdevs:
                if vdev.get("path", "").lower() == path.lower():
                    return vdev
                found = walk(vdev.get("children", []))
                if found is not None:
                    return found
            return None
        return walk(self.pools[pool]["vdevs"])

    def set_scan(self, pool: str, path: str, func: int, state: int, processed: int = 1223) -> None:
        vdev = self.find(pool, path)
        vdev["scan_stats"] = [func, state]
        vdev["vdev_stats"][25] = processed

    def set_state(self, pool: str, path: str, state: int, aux: int = 0) -> None:
        vdev = self.find(pool, path)
        vdev["vdev_stats"][1] = state
        vdev["vdev_stats"][2] = aux

    def leaf_paths(self, pool: str) -> List[str]:
        paths = []

        def walk(vdevs):
            for vdev in vdevs:
                if vdev.get("children"):
                    walk(vdev["children"])
                else:
                    paths.append(vdev["path"])
        walk(self.pools[pool]["vdevs"])
        return paths

    # Executor

    def execute(self, command: str) -> bytes:
        self.calls.append(command)
        for prefix, error in self.failures.items():
            if command.startswith(prefix):
                raise CommandError(command, error.returncode, error.output)

        args = shlex.split(command)
        handler = getattr(self, f"_{args[0]}_{args[1]}", None)
        if handler is None:
            raise CommandError(command, 2, f"unexpected command {command}")
        return handler(command, args[2:]).encode()

    def _require(self, command: str, pool: str) -> Dict:
        if pool not in self.pools:
            raise CommandError(command, 1, f"cannot open '{pool}': no such pool")
        return self.pools[pool]

    @staticmethod
    def _positional(args: List[str]) -> List[str]:
        positional, skip = [], False
        for arg in args:
            if skip:
                skip = False
            elif arg in ("-c", "-d", "-o", "-O"):
                skip = True
            elif not arg.startswith("-"):
                positional.append(arg)
        return positional

    @staticmethod
    def _top_vdevs(words: List[str], is_log: bool = False) -> List[Dict]:
        if words and words[0] in VDEV_TYPES:
            group = {"type": words[0], "children": [leaf(p) for p in words[1:]], "vdev_stats": [0, 7]}
            vdevs = [group]
        else:
            vdevs = [leaf(p) for p in words]
        for vdev in vdevs:
            vdev["is_log"] = int(is_log)
        return vdevs

    def _zpool_get(self, command, args):
        props, pool = args[-2].split(","), args[-1]
        state = self._require(command, pool)
        values = []
        for prop in props:
            if prop == "name":
                values.append(pool)
            elif prop == "health":
                values.append(state["health"])
            elif prop == "free":
                values.append(str(state["props"]["size"] - state["props"]["allocated"]))
            else:
                values.append(str(state["props"][prop]))
        return "\n".join(values) + "\n"

    def _zpool_import(self, command, args):
        positional = self._positional(args)
        if not positional:
            if not self.exported:
                raise CommandError(command, 1, "no pools available to import")
            return "".join(f"   pool: {name}\n     id: 1234\n  state: ONLINE\n" for name in self.exported)

        if "-c" in args and not self.cache_import_works:
            raise CommandError(command, 1, "cannot import: no such pool in cache file")
        source, target = positional[0], positional[-1]
        if source not in self.exported:
            raise CommandError(command, 1, f"cannot import '{source}': no such pool available")
        self.pools[target] = self.exported.pop(source)
        return ""

    def _zpool_create(self, command, args):
        pool, *words = self._positional(args)
        if pool in self.pools:
            raise CommandError(command, 1, f"cannot create '{pool}': pool already exists")
        state = self.add_pool(pool, self._top_vdevs(words))
        for option in args:
            if option.startswith("compression="):
                state["datasets"]["compression"] = option.split("=", 1)[1]
        return ""

    def _zpool_add(self, command, args):
        pool, *words = self._positional(args)
        state = self._require(command, pool)
        is_log = bool(words) and words[0] == "log"
        state["vdevs"].extend(self._top_vdevs(words[1:] if is_log else words, is_log))
        return ""

    def _zpool_dump(self, command, args):
        state = self._require(command, args[0])
        tree = {"type": "root", "children": state["vdevs"], "vdev_stats": [0, 7]}
        return json.dumps({"vdev_children": len(state["vdevs"]), "vdev_tree": tree})

    def _zpool_replace(self, command, args):
        pool, old, new = args
        self._require(command, pool)
        vdev = self.find(pool, old)
        if vdev is None:
            raise CommandError(command, 1, f"no such device in pool: {old}")
        vdev["path"] = new
        vdev["scan_stats"] = [2, 2]
        vdev["vdev_stats"][25] = 1223
        return ""

    def _zpool_destroy(self, command, args):
        self._require(command, args[0])
        del self.pools[args[0]]
        return ""

    def _zpool_labelclear(self, command, args):
        return ""

    def _zfs_get(self, command, args):
        props, dataset = args[-2].split(","), args[-1]
        state = self._require(command, dataset)
        return "\n".join(str(state["datasets"][p]) for p in props) + "\n"

    def _zfs_set(self, command, args):
        *assignments, dataset = args
        state = self._require(command, dataset)
        for assignment in assignments:
            key, value = assignment.split("=", 1)
            state["datasets"][key] = value
        return ""


@pytest.fixture(autouse=True)
def reset_globals():
    """Every test starts without cached pool properties or loaded config."""
    clear_property_cache()
    set_config(None)
    yield
    clear_property_cache()
    set_config(None)


@pytest.fixture
def store():
    return ObjectStore(namespace="default")


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def fake_zpool():
    return FakeZpool()


@pytest.fixture
def engine(store, fake_zpool, recorder):
    """Pool engine for POOL_NAME backed by the fake zpool."""
    return PoolEngine(store, fake_zpool, recorder, pool_name=POOL_NAME, dev_dir=DEV_DIR, cache_file=CACHE_FILE)


@pytest.fixture
def add_node(store):
    def _add(name: str, **labels) -> Node:
        all_labels = {HOSTNAME_LABEL: name}
        all_labels.update(labels)
        return store.create(Node(metadata=ObjectMeta(name=name, labels=all_labels)))
    return _add


@pytest.fixture
def add_block_device(store):
    def _add(name: str, node: str = "node-1", labels: Optional[Dict[str, str]] = None,
             claimed_by: str = "") -> BlockDevice:
        all_labels = {HOSTNAME_LABEL: node}
        all_labels.update(labels or {})
        status = BlockDeviceStatus()
        if claimed_by:
            status = BlockDeviceStatus(claim_state=ClaimState.CLAIMED, claimed_by=claimed_by)
        return store.create(BlockDevice(
            metadata=ObjectMeta(name=name, labels=all_labels),
            spec=BlockDeviceSpec(node_name=node, path=f"/dev/{name}", dev_links=[dev_link(name)], capacity=10 * GiB),
            status=status,
        ))
    return _add


@pytest.fixture
def add_pool_instance(store):
    """Create a PoolInstance with one raid group per list of device names."""
    def _add(name: str, groups: List[List[str]], raid_type: RaidType = RaidType.STRIPE,
             cache_groups: Optional[List[List[str]]] = None, cache_type: Optional[RaidType] = None,
             cluster: str = "cluster-a", host: str = "node-1", **config) -> PoolInstance:
        instance = PoolInstance(
            metadata=ObjectMeta(name=name, labels={CLUSTER_LABEL: cluster, HOSTNAME_LABEL: host}),
            spec=PoolInstanceSpec(
                host_name=host,
                pool_config=PoolConfig(data_raid_group_type=raid_type, write_cache_group_type=cache_type, **config),
                data_raid_groups=[
                    RaidGroup(block_devices=[BlockDeviceRef(block_device_name=n) for n in group])
                    for group in groups
                ],
                write_cache_raid_groups=[
                    RaidGroup(block_devices=[BlockDeviceRef(block_device_name=n) for n in group])
                    for group in cache_groups or []
                ],
            ),
        )
        return store.create(instance)
    return _add


@pytest.fixture
def add_pools(add_pool_instance):
    """Create pool-1..pool-N in a cluster, pool-i on node-i."""
    def _add(count: int, cluster: str = "cluster-a") -> List[PoolInstance]:
        return [
            add_pool_instance(f"pool-{i}", [[f"bd-{i}"]], cluster=cluster, host=f"node-{i}")
            for i in range(1, count + 1)
        ]
    return _add


@pytest.fixture
def add_volume_config(store):
    def _add(name: str = "vol-1", replica_count: int = 3, pools: Optional[List[str]] = None,
             cluster: str = "cluster-a", capacity: int = 5 * GiB, annotations: Optional[Dict[str, str]] = None,
             **spec) -> VolumeConfig:
        policy = VolumePolicySpec(replica_pool_info=[ReplicaPoolInfo(pool_name=p) for p in pools or []])
        vc = VolumeConfig(
            metadata=ObjectMeta(name=name, labels={CLUSTER_LABEL: cluster}, annotations=annotations or {}),
            spec=VolumeConfigSpec(capacity=capacity, replica_count=replica_count, policy=policy, **spec),
        )
        return store.create(vc)
    return _add


def make_pool_spec(node: str, groups: List[List[str]], raid_type: RaidType = RaidType.STRIPE) -> PoolSpec:
    return PoolSpec(
        node_selector={HOSTNAME_LABEL: node},
        data_raid_groups=[
            RaidGroup(block_devices=[BlockDeviceRef(block_device_name=n) for n in group]) for group in groups
        ],
        pool_config=PoolConfig(data_raid_group_type=raid_type),
    )


@pytest.fixture
def add_cluster(store):
    def _add(name: str = "cluster-a", pools: Optional[List[PoolSpec]] = None,
             annotations: Optional[Dict[str, str]] = None) -> PoolCluster:
        return store.create(PoolCluster(
            metadata=ObjectMeta(name=name, annotations=annotations or {}),
            spec=PoolClusterSpec(pools=pools or []),
        ))
    return _add


@pytest.fixture
def add_claim(store):
    """Bound claim of cluster on a block device, named bdc-<device>."""
    def _add(bd_name: str, predecessor: str = "", cluster: str = "cluster-a") -> BlockDeviceClaim:
        annotations = {PREDECESSOR_ANNOTATION: predecessor} if predecessor else {}
        return store.create(BlockDeviceClaim(
            metadata=ObjectMeta(
                name=f"bdc-{bd_name}",
                labels={CLUSTER_LABEL: cluster},
                annotations=annotations,
                finalizers=[CLUSTER_FINALIZER],
            ),
            spec=BlockDeviceClaimSpec(block_device_name=bd_name, node_name="node-1"),
            status=BlockDeviceClaimStatus(phase=ClaimPhase.BOUND),
        ))
    return _add


CLUSTER_MANIFEST = """\
kind: Node
metadata:
  name: node-1
  labels:
    strata.io/hostname: node-1
---
kind: BlockDevice
metadata:
  name: bd-1
  labels:
    strata.io/hostname: node-1
spec:
  node_name: node-1
  path: /dev/sdb
  dev_links: [/dev/disk/by-id/ata-bd-1]
  capacity: 10737418240
---
kind: PoolCluster
metadata:
  name: cluster-a
spec:
  pools:
    - node_selector:
        strata.io/hostname: node-1
      data_raid_groups:
        - block_devices:
            - block_device_name: bd-1
      pool_config:
        data_raid_group_type: stripe
---
kind: VolumeConfig
metadata:
  name: vol-1
  labels:
    strata.io/pool-cluster: cluster-a
spec:
  capacity: 5368709120
  replica_count: 1
"""
