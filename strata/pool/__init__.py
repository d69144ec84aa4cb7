"""Per-node pool topology engine."""
from strata.pool.create import add_raid_group, create_pool
from strata.pool.delete import delete_pool
from strata.pool.engine import PoolEngine
from strata.pool.importer import import_pool
from strata.pool.properties import set_pool_properties, set_properties_if_not
from strata.pool.replacement import (
    expand_pool,
    get_unavailable_disks,
    is_resilvering_in_progress,
    replace_pool_vdev,
    update_pool,
)
from strata.pool.status import refresh_status

__all__ = [
    'PoolEngine',
    'add_raid_group',
    'create_pool',
    'delete_pool',
    'expand_pool',
    'get_unavailable_disks',
    'import_pool',
    'is_resilvering_in_progress',
    'refresh_status',
    'replace_pool_vdev',
    'set_pool_properties',
    'set_properties_if_not',
    'update_pool',
]
