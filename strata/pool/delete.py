"""Pool destruction."""
from strata.core import zcmd
from strata.core.errors import CommandError, NotFoundError
from strata.core.logger import get_logger
from strata.models.pool import PoolInstance
from strata.pool.engine import PoolEngine
from strata.pool.properties import forget_dataset

logger = get_logger(__name__)


def clear_pool_labels(engine: PoolEngine, instance: PoolInstance) -> None:
    """Wipe pool labels from every device; failures are only logged."""
    for group, _ in instance.raid_groups():
        for bdev in group.block_devices:
            try:
                path = bdev.dev_link or engine.device_path(bdev.block_device_name)
                engine.run(zcmd.label_clear(path))
            except (CommandError, NotFoundError) as e:
                logger.error(f"Failed to perform label clear for disk {bdev.block_device_name}: {e}")


def delete_pool(engine: PoolEngine, instance: PoolInstance) -> None:
    """Destroy the pool and clear its device labels."""
    if not engine.exists():
        logger.info(f"Pool {engine.pool_name} not imported or does not exist, nothing to destroy")
        return

    engine.run(zcmd.pool_destroy(engine.pool_name))
    forget_dataset(engine.pool_name)
    logger.info(f"Destroyed pool {engine.pool_name} of {instance.name}")
    clear_pool_labels(engine, instance)
