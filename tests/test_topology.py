"""Tests for the pool topology model."""
import json

import pytest

from strata.models.topology import ScanFunc, ScanState, Topology, VdevAux, VdevState, vdev_state_string


def vdev(path, state=VdevState.HEALTHY, children=None, scan=None):
    stats = [0] * 26
    stats[1] = state
    return {"type": "disk" if not children else "mirror", "path": path, "vdev_stats": stats,
            "scan_stats": scan or [], "children": children or []}


def topology(children, spares=None, l2cache=None):
    return Topology.from_dict({
        "vdev_children": len(children),
        "vdev_tree": {"type": "root", "children": children, "spares": spares or [], "l2cache": l2cache or []},
    })


class TestVdevStateString:
    @pytest.mark.parametrize("state,aux,expected", [
        (VdevState.CLOSED, VdevAux.NONE, "OFFLINE"),
        (VdevState.OFFLINE, VdevAux.NONE, "OFFLINE"),
        (VdevState.REMOVED, VdevAux.NONE, "REMOVED"),
        (VdevState.CANT_OPEN, VdevAux.CORRUPT_DATA, "FAULTED"),
        (VdevState.CANT_OPEN, VdevAux.BAD_LOG, "FAULTED"),
        (VdevState.CANT_OPEN, VdevAux.SPLIT_POOL, "SPLIT"),
        (VdevState.CANT_OPEN, VdevAux.OPEN_FAILED, "UNAVAILABLE"),
        (VdevState.FAULTED, VdevAux.NONE, "FAULTED"),
        (VdevState.DEGRADED, VdevAux.NONE, "DEGRADED"),
        (VdevState.HEALTHY, VdevAux.NONE, "ONLINE"),
        (VdevState.UNKNOWN, VdevAux.NONE, "UNKNOWN"),
    ])
    def test_mapping(self, state, aux, expected):
        assert vdev_state_string(state, aux) == expected


class TestTopology:
    def test_from_json_bytes(self):
        raw = json.dumps({"vdev_children": 1, "vdev_tree": {"children": [vdev("/dev/sdb")]}}).encode()

        parsed = Topology.from_json(raw)

        assert parsed.vdev_children == 1
        assert parsed.top_vdevs[0].path == "/dev/sdb"

    def test_search_is_recursive_and_case_insensitive(self):
        tree = topology(
            [vdev("", children=[vdev("/dev/disk/by-id/ATA-one"), vdev("/dev/disk/by-id/ata-two")])],
            spares=[vdev("/dev/sdx")],
            l2cache=[vdev("/dev/sdy")],
        )

        assert tree.get_vdev("/dev/disk/by-id/ata-one").path == "/dev/disk/by-id/ATA-one"
        assert tree.get_vdev("/dev/sdx") is not None
        assert tree.get_vdev("/dev/sdy") is not None
        assert tree.get_vdev("/dev/sdz") is None

    def test_first_used(self):
        tree = topology([vdev("/dev/sdb")])

        assert tree.first_used(["/dev/disk/by-id/ata-b", "/dev/sdb"]) == ("/dev/sdb", True)
        assert tree.first_used(["/dev/sdc"]) == ("", False)

    def test_leaf_vdevs(self):
        tree = topology([vdev("", children=[vdev("/dev/a"), vdev("/dev/b")]), vdev("/dev/c")])

        assert [v.path for v in tree.leaf_vdevs()] == ["/dev/a", "/dev/b", "/dev/c"]

    def test_resilver_finished_only_on_leaves(self):
        finished = [ScanFunc.RESILVER, ScanState.FINISHED]
        tree = topology([vdev("/dev/a", scan=finished), vdev("/dev/m", children=[vdev("/dev/b")], scan=finished),
                         vdev("/dev/c", scan=[ScanFunc.SCRUB, ScanState.FINISHED])])

        assert tree.get_vdev("/dev/a").is_resilver_finished()
        assert not tree.get_vdev("/dev/m").is_resilver_finished()
        assert not tree.get_vdev("/dev/c").is_resilver_finished()

    def test_short_stats_default_to_zero(self):
        tree = Topology.from_dict({"vdev_tree": {"children": [{"path": "/dev/a", "vdev_stats": [0]}]}})

        assert tree.get_vdev("/dev/a").state == 0
        assert tree.get_vdev("/dev/a").scan_processed == 0
