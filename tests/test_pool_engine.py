"""Tests for pool create, import, delete and property handling."""
import logging

import pytest

from strata.core.errors import PoolImportError, StrataError, TransientError
from strata.core.executor import Executor, ShellExecutor
from strata.models.keys import EXISTING_POOL_NAME_ANNOTATION
from strata.models.pool import PoolInstance, RaidType
from strata.pool import create_pool, delete_pool, import_pool, set_pool_properties, set_properties_if_not
from strata.pool.engine import PoolEngine
from strata.pool.properties import cached_properties

from conftest import CACHE_FILE, DEV_DIR, POOL_NAME, dev_link, leaf


@pytest.fixture
def devices(add_block_device):
    for name in ("bd-1", "bd-2", "bd-3", "bd-4"):
        add_block_device(name)


class TestCreatePool:
    """Pool creation from raid groups."""

    def test_mirror_with_log_group(self, engine, fake_zpool, devices, add_pool_instance):
        """One create for the first data group, then one log add, in order."""
        instance = add_pool_instance("pool-a", [["bd-1", "bd-2"]], raid_type=RaidType.MIRROR,
                                     cache_groups=[["bd-3"]])

        assert create_pool(engine, instance) is True

        mutations = [c for c in fake_zpool.calls if c.startswith(("zpool create", "zpool add"))]
        assert mutations == [
            f"zpool create -f -o cachefile={CACHE_FILE} -O compression=lz4 -O canmount=off "
            f"{POOL_NAME} mirror {dev_link('bd-1')} {dev_link('bd-2')}",
            f"zpool add -f {POOL_NAME} log mirror {dev_link('bd-3')}",
        ]

    def test_stripe_create_has_no_vdev_keyword(self, engine, fake_zpool, devices, add_pool_instance):
        instance = add_pool_instance("pool-a", [["bd-1", "bd-2"]], compression="gzip-6")

        create_pool(engine, instance)

        assert fake_zpool.commands("zpool create") == [
            f"zpool create -f -o cachefile={CACHE_FILE} -O compression=gzip-6 -O canmount=off "
            f"{POOL_NAME} {dev_link('bd-1')} {dev_link('bd-2')}"
        ]

    def test_second_create_is_a_no_op(self, engine, fake_zpool, devices, add_pool_instance):
        """Create on an existing pool issues no further create command."""
        instance = add_pool_instance("pool-a", [["bd-1", "bd-2"]], raid_type=RaidType.MIRROR)

        assert create_pool(engine, instance) is True
        assert create_pool(engine, instance) is False

        assert len(fake_zpool.commands("zpool create")) == 1

    def test_importable_pool_blocks_create(self, engine, fake_zpool, devices, add_pool_instance):
        """A pool found by an import scan must not be overwritten."""
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1"))], exported=True)
        instance = add_pool_instance("pool-a", [["bd-1"]])

        with pytest.raises(TransientError, match="faulty state"):
            create_pool(engine, instance)

        assert fake_zpool.commands("zpool create") == []

    def test_every_add_is_tried(self, engine, fake_zpool, devices, add_pool_instance):
        """Add failures are collected and raised after all groups were tried."""
        instance = add_pool_instance("pool-a", [["bd-1"], ["bd-2"]], cache_groups=[["bd-3"]])
        fake_zpool.fail_on("zpool add")

        with pytest.raises(StrataError, match="Failed to add raid group"):
            create_pool(engine, instance)

        assert len(fake_zpool.commands("zpool add")) == 2

    def test_create_failure_names_pool(self, engine, fake_zpool, devices, add_pool_instance):
        instance = add_pool_instance("pool-a", [["bd-1"]])
        fake_zpool.fail_on("zpool create", output="invalid vdev specification")

        with pytest.raises(StrataError, match=f"Failed to create pool {POOL_NAME}"):
            create_pool(engine, instance)


class TestImportPool:
    def test_existing_pool_needs_no_import(self, engine, fake_zpool, devices, add_pool_instance):
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1"))])
        instance = add_pool_instance("pool-a", [["bd-1"]])

        assert import_pool(engine, instance) is True
        assert [c for c in fake_zpool.calls if c.startswith("zpool import")] == []

    def test_import_from_cache_file(self, engine, fake_zpool, recorder, devices, add_pool_instance):
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1"))], exported=True)
        instance = add_pool_instance("pool-a", [["bd-1"]])

        assert import_pool(engine, instance) is True

        assert fake_zpool.commands("zpool import") == [
            f"zpool import -c {CACHE_FILE} -o cachefile={CACHE_FILE} {POOL_NAME}"
        ]
        assert POOL_NAME in fake_zpool.pools
        assert "PoolImported" in recorder.reasons("PoolInstance", "pool-a")

    def test_falls_back_to_device_directory(self, engine, fake_zpool, devices, add_pool_instance):
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1"))], exported=True)
        fake_zpool.cache_import_works = False
        instance = add_pool_instance("pool-a", [["bd-1"]])

        assert import_pool(engine, instance) is True

        assert fake_zpool.commands("zpool import")[-1] == (
            f"zpool import -d /dev/disk/by-id -o cachefile={CACHE_FILE} {POOL_NAME}"
        )

    def test_rename_clears_annotation(self, engine, fake_zpool, store, devices, add_pool_instance):
        """An imported pool is renamed once and the annotation dropped."""
        fake_zpool.add_pool("legacy-pool", [leaf(dev_link("bd-1"))], exported=True)
        instance = add_pool_instance("pool-a", [["bd-1"]])
        instance.metadata.annotations[EXISTING_POOL_NAME_ANNOTATION] = "legacy-pool"
        instance = store.update(instance)

        import_pool(engine, instance)

        assert POOL_NAME in fake_zpool.pools
        assert "legacy-pool" not in fake_zpool.exported
        stored = store.get(PoolInstance, "pool-a")
        assert EXISTING_POOL_NAME_ANNOTATION not in stored.annotations

    def test_nothing_to_import(self, engine, fake_zpool, devices, add_pool_instance):
        instance = add_pool_instance("pool-a", [["bd-1"]])

        with pytest.raises(PoolImportError):
            import_pool(engine, instance)

        assert len(fake_zpool.commands("zpool import")) == 2


class TestDeletePool:
    def test_absent_pool_is_left_alone(self, engine, fake_zpool, devices, add_pool_instance):
        instance = add_pool_instance("pool-a", [["bd-1"]])

        delete_pool(engine, instance)

        assert fake_zpool.commands("zpool destroy") == []

    def test_destroy_then_label_clear(self, engine, fake_zpool, devices, add_pool_instance):
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1")), leaf(dev_link("bd-2"))])
        instance = add_pool_instance("pool-a", [["bd-1", "bd-2"]])

        delete_pool(engine, instance)

        assert POOL_NAME not in fake_zpool.pools
        assert fake_zpool.commands("zpool labelclear") == [
            f"zpool labelclear -f {dev_link('bd-1')}",
            f"zpool labelclear -f {dev_link('bd-2')}",
        ]

    def test_label_clear_errors_are_only_logged(self, engine, fake_zpool, devices, add_pool_instance):
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1"))])
        fake_zpool.fail_on("zpool labelclear")
        instance = add_pool_instance("pool-a", [["bd-1", "bd-2"]])

        delete_pool(engine, instance)

        assert len(fake_zpool.commands("zpool labelclear")) == 2


class TestProperties:
    def test_only_differing_properties_are_set(self, engine, fake_zpool):
        fake_zpool.add_pool(POOL_NAME, [leaf("/dev/sdb")])

        changed = set_pool_properties(engine, "gzip")

        assert changed == {"compression": "gzip"}
        assert fake_zpool.commands("zfs set") == [f"zfs set compression=gzip {POOL_NAME}"]

    def test_cached_values_skip_the_node(self, engine, fake_zpool):
        """Once a value is known to be applied it is not read again."""
        fake_zpool.add_pool(POOL_NAME, [leaf("/dev/sdb")])

        set_pool_properties(engine, "lz4")
        reads = len(fake_zpool.commands("zfs get"))
        set_pool_properties(engine, "lz4")

        assert len(fake_zpool.commands("zfs get")) == reads
        assert cached_properties(POOL_NAME) == {"canmount": "off", "compression": "lz4"}

    def test_set_multiple_in_one_command(self, engine, fake_zpool):
        fake_zpool.add_pool(POOL_NAME, [leaf("/dev/sdb")])

        set_properties_if_not(engine, POOL_NAME, {"compression": "off", "readonly": "on"})

        assert fake_zpool.commands("zfs set") == [f"zfs set compression=off readonly=on {POOL_NAME}"]

    def test_destroy_forgets_cache(self, engine, fake_zpool, devices, add_pool_instance):
        fake_zpool.add_pool(POOL_NAME, [leaf(dev_link("bd-1"))])
        set_pool_properties(engine, "lz4")

        delete_pool(engine, add_pool_instance("pool-a", [["bd-1"]]))

        assert cached_properties(POOL_NAME) == {}


class TestMockExecutor:
    """A mock executor logs every command and pretends no pool exists yet."""

    @pytest.fixture
    def mock_engine(self, store, recorder):
        return PoolEngine(store, ShellExecutor(mock=True), recorder, pool_name=POOL_NAME,
                          dev_dir=DEV_DIR, cache_file=CACHE_FILE)

    def test_mock_pool_is_absent(self, mock_engine):
        assert mock_engine.exists() is False

    def test_mock_create_shows_every_command(self, mock_engine, devices, add_pool_instance, caplog):
        caplog.set_level(logging.INFO)
        instance = add_pool_instance("pool-a", [["bd-1", "bd-2"]], raid_type=RaidType.MIRROR,
                                     cache_groups=[["bd-3"]])

        assert create_pool(mock_engine, instance) is True

        commands = [r.getMessage() for r in caplog.records if r.getMessage().startswith("MOCK: ")]
        assert f"MOCK: Would run zpool add -f {POOL_NAME} log mirror {dev_link('bd-3')}" in commands
        assert any(c.startswith("MOCK: Would run zpool create") for c in commands)

    def test_mock_import_does_not_claim_a_pool(self, mock_engine, devices, add_pool_instance):
        instance = add_pool_instance("pool-a", [["bd-1"]])

        with pytest.raises(PoolImportError, match="Failed to import"):
            import_pool(mock_engine, instance)


class TestExecutorInterface:
    def test_executor_is_abstract(self):
        with pytest.raises(TypeError):
            Executor()

    def test_implementation_must_define_execute(self):
        class Incomplete(Executor):
            pass

        with pytest.raises(TypeError):
            Incomplete()
