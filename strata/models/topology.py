"""Pool topology as reported by `zpool dump`."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple

# Positions inside a vdev's vdev_stats array
VDEV_STATE_INDEX = 1
VDEV_AUX_INDEX = 2
VDEV_SCAN_PROCESSED_INDEX = 25

# Positions inside a vdev's scan_stats array
SCAN_STATS_FUNC_INDEX = 0
SCAN_STATS_STATE_INDEX = 1


class ScanState(IntEnum):
    NONE = 0
    SCANNING = 1
    FINISHED = 2
    CANCELED = 3


class ScanFunc(IntEnum):
    NONE = 0
    SCRUB = 1
    RESILVER = 2


class VdevState(IntEnum):
    UNKNOWN = 0
    CLOSED = 1
    OFFLINE = 2
    REMOVED = 3
    CANT_OPEN = 4
    FAULTED = 5
    DEGRADED = 6
    HEALTHY = 7


class VdevAux(IntEnum):
    NONE = 0
    OPEN_FAILED = 1
    CORRUPT_DATA = 2
    NO_REPLICAS = 3
    BAD_GUID_SUM = 4
    TOO_SMALL = 5
    BAD_LABEL = 6
    VERSION_NEWER = 7
    VERSION_OLDER = 8
    UNSUP_FEAT = 9
    SPARED = 10
    ERR_EXCEEDED = 11
    IO_FAILURE = 12
    BAD_LOG = 13
    EXTERNAL = 14
    SPLIT_POOL = 15


def vdev_state_string(state: int, aux: int) -> str:
    """Human readable vdev state, as zpool status prints it."""
    if state in (VdevState.CLOSED, VdevState.OFFLINE):
        return "OFFLINE"
    if state == VdevState.REMOVED:
        return "REMOVED"
    if state == VdevState.CANT_OPEN:
        if aux in (VdevAux.CORRUPT_DATA, VdevAux.BAD_LOG):
            return "FAULTED"
        if aux == VdevAux.SPLIT_POOL:
            return "SPLIT"
        return "UNAVAILABLE"
    if state == VdevState.FAULTED:
        return "FAULTED"
    if state == VdevState.DEGRADED:
        return "DEGRADED"
    if state == VdevState.HEALTHY:
        return "ONLINE"
    return "UNKNOWN"


@dataclass
class Vdev:
    """One vertex of the pool's vdev tree."""
    type: str = ""
    path: str = ""
    is_log: bool = False
    is_spare: bool = False
    whole_disk: bool = False
    asize: int = 0
    vdev_stats: List[int] = field(default_factory=list)
    scan_stats: List[int] = field(default_factory=list)
    children: List["Vdev"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vdev":
        return cls(
            type=data.get("type", ""),
            path=data.get("path", ""),
            is_log=bool(data.get("is_log", 0)),
            is_spare=bool(data.get("is_spare", 0)),
            whole_disk=bool(data.get("whole_disk", 0)),
            asize=int(data.get("asize", 0)),
            vdev_stats=list(data.get("vdev_stats") or []),
            scan_stats=list(data.get("scan_stats") or []),
            children=[cls.from_dict(c) for c in data.get("children") or []],
        )

    def _stat(self, index: int) -> int:
        if index < len(self.vdev_stats):
            return self.vdev_stats[index]
        return 0

    @property
    def state(self) -> int:
        return self._stat(VDEV_STATE_INDEX)

    @property
    def aux(self) -> int:
        return self._stat(VDEV_AUX_INDEX)

    @property
    def scan_processed(self) -> int:
        return self._stat(VDEV_SCAN_PROCESSED_INDEX)

    @property
    def state_string(self) -> str:
        return vdev_state_string(self.state, self.aux)

    def is_resilver_finished(self) -> bool:
        """Leaf vdev whose last scan was a resilver that ran to completion."""
        if self.children or len(self.scan_stats) <= SCAN_STATS_STATE_INDEX:
            return False
        return (
            self.scan_stats[SCAN_STATS_STATE_INDEX] == ScanState.FINISHED
            and self.scan_stats[SCAN_STATS_FUNC_INDEX] == ScanFunc.RESILVER
        )


def find_vdev(vdevs: Iterable[Vdev], path: str) -> Optional[Vdev]:
    """Depth-first search for a vdev by path, ignoring case."""
    for vdev in vdevs:
        if vdev.path and vdev.path.lower() == path.lower():
            return vdev
        found = find_vdev(vdev.children, path)
        if found is not None:
            return found
    return None


@dataclass
class Topology:
    """Root of the vdev tree with its spare and cache devices."""
    vdev_children: int = 0
    type: str = "root"
    top_vdevs: List[Vdev] = field(default_factory=list)
    spares: List[Vdev] = field(default_factory=list)
    l2cache: List[Vdev] = field(default_factory=list)
    vdev_stats: List[int] = field(default_factory=list)
    scan_stats: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Topology":
        tree = data.get("vdev_tree") or {}
        return cls(
            vdev_children=int(data.get("vdev_children", 0)),
            type=tree.get("type", "root"),
            top_vdevs=[Vdev.from_dict(v) for v in tree.get("children") or []],
            spares=[Vdev.from_dict(v) for v in tree.get("spares") or []],
            l2cache=[Vdev.from_dict(v) for v in tree.get("l2cache") or []],
            vdev_stats=list(tree.get("vdev_stats") or []),
            scan_stats=list(tree.get("scan_stats") or []),
        )

    @classmethod
    def from_json(cls, raw) -> "Topology":
        if isinstance(raw, bytes):
            raw = raw.decode()
        return cls.from_dict(json.loads(raw))

    def get_vdev(self, path: str) -> Optional[Vdev]:
        for vdevs in (self.top_vdevs, self.spares, self.l2cache):
            vdev = find_vdev(vdevs, path)
            if vdev is not None:
                return vdev
        return None

    def first_used(self, paths: Iterable[str]) -> Tuple[str, bool]:
        """Return the first of paths present in the pool, and whether one was."""
        for path in paths:
            if self.get_vdev(path) is not None:
                return path, True
        return "", False

    def leaf_vdevs(self) -> List[Vdev]:
        leaves = []

        def walk(vdevs):
            for vdev in vdevs:
                if vdev.children:
                    walk(vdev.children)
                else:
                    leaves.append(vdev)

        for vdevs in (self.top_vdevs, self.spares, self.l2cache):
            walk(vdevs)
        return leaves
