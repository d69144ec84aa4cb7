"""Importing an existing on-disk pool."""
import os

from strata.core import zcmd
from strata.core.errors import CommandError, PoolImportError
from strata.core.logger import get_logger
from strata.models.keys import EXISTING_POOL_NAME_ANNOTATION
from strata.models.pool import PoolInstance
from strata.pool.engine import PoolEngine

logger = get_logger(__name__)


def _scan_dir(engine: PoolEngine, instance: PoolInstance) -> str:
    """Directory holding the instance's first device, unless it is /dev itself."""
    first = instance.spec.data_raid_groups[0].block_devices[0].block_device_name
    directory = os.path.dirname(engine.device_path(first))
    if directory in ("", "/dev"):
        return engine.dev_dir
    return directory


def import_pool(engine: PoolEngine, instance: PoolInstance) -> bool:
    """Import the instance's pool, renaming it if annotated.

    Tries the cache file first and a device directory scan second. On
    success the existing-pool-name annotation is removed from the stored
    instance so the rename is not attempted again.

    Returns:
        True when the pool is present afterwards

    Raises:
        PoolImportError: if neither import path worked
    """
    if engine.exists():
        return True

    existing_name = instance.annotations.get(EXISTING_POOL_NAME_ANNOTATION) or None
    commands = [
        zcmd.pool_import(engine.pool_name, engine.cache_file, existing_name),
        zcmd.pool_import(engine.pool_name, engine.cache_file, existing_name,
                         dev_dir=_scan_dir(engine, instance), use_cache_file=False),
    ]

    logger.info(f"Importing pool {engine.pool_name} for {instance.name}")
    failure = None
    for command in commands:
        try:
            output = engine.run(command)
        except CommandError as e:
            logger.warning(f"Import attempt failed: {e}")
            failure = e
            continue
        if engine.exists():
            break
        failure = CommandError(command, 0, output,
                               message=f"pool {engine.pool_name} not present after import")
        logger.warning(f"Import attempt failed: {failure}")
    else:
        raise PoolImportError(
            failure.command, failure.returncode, failure.output,
            message=f"Failed to import pool {engine.pool_name}",
        )

    if existing_name:
        latest = engine.store.get(PoolInstance, instance.name)
        latest.metadata.annotations.pop(EXISTING_POOL_NAME_ANNOTATION, None)
        instance.metadata = engine.store.update(latest).metadata
        logger.info(f"Renamed pool {existing_name} to {engine.pool_name}")

    engine.recorder.normal(instance, "PoolImported", f"Pool Import successful: {engine.pool_name}")
    return True
