"""Pool creation from raid group specs."""
from typing import List

from strata.core import zcmd
from strata.core.errors import CommandError, ErrorAccumulator, TransientError
from strata.core.logger import get_logger
from strata.models.pool import PoolInstance, RaidGroup, RaidType
from strata.pool.engine import PoolEngine

logger = get_logger(__name__)


def _group_devices(engine: PoolEngine, group: RaidGroup) -> List[str]:
    return [engine.device_path(bd.block_device_name) for bd in group.block_devices]


def add_raid_group(engine: PoolEngine, group: RaidGroup, raid_type: RaidType,
                   is_write_cache: bool = False) -> None:
    """Extend the pool with one raid group."""
    devices = _group_devices(engine, group)
    engine.run(zcmd.pool_add(engine.pool_name, raid_type.vdev_keyword, devices, log=is_write_cache))
    logger.info(
        f"Added {'write-cache' if is_write_cache else 'data'} {raid_type.value} "
        f"group {devices} to pool {engine.pool_name}"
    )


def create_pool(engine: PoolEngine, instance: PoolInstance) -> bool:
    """Create the pool from the instance's raid groups.

    The first data raid group creates the pool; every other data and
    write-cache group is added afterwards. Add failures are collected and
    raised together once every group has been tried; groups already added
    stay in place for the next reconcile.

    Returns:
        True if a create command was issued, False if the pool already existed
    """
    if engine.exists():
        logger.info(f"Pool {engine.pool_name} already exists, skipping create")
        return False

    output, importable = engine.check_importable()
    if importable:
        raise TransientError(f"Pool {engine.pool_name} is in faulty state.. {output.strip()}")

    logger.info(f"Creating pool {engine.pool_name} for {instance.name}")
    config = instance.spec.pool_config
    first, *remaining = instance.spec.data_raid_groups

    devices = _group_devices(engine, first)
    try:
        engine.run(zcmd.pool_create(
            engine.pool_name,
            config.data_raid_group_type.vdev_keyword,
            devices,
            cache_file=engine.cache_file,
            compression=config.compression,
        ))
    except CommandError as e:
        raise CommandError(e.command, e.returncode, e.output,
                           message=f"Failed to create pool {engine.pool_name}") from e

    errors = ErrorAccumulator()
    pending = [(group, False) for group in remaining]
    pending += [(group, True) for group in instance.spec.write_cache_raid_groups]
    for group, is_write_cache in pending:
        try:
            add_raid_group(engine, group, instance.group_type(is_write_cache), is_write_cache)
        except TransientError as e:
            errors.add(f"Failed to add raid group {group.device_names()}", e)

    errors.raise_if_any()
    return True
