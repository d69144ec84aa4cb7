"""Propagating pool cluster spec edits to existing instances.

Two edits are recognised: raid groups or stripe members added to a pool
(expansion) and a single device swapped inside a raid group (replacement).
"""
from typing import Dict, List, Optional

from strata.cluster.claims import (
    claim_block_device,
    cluster_claims,
    is_block_device_claimed,
    is_claimed_bd_usable,
)
from strata.cluster.selection import node_from_selector
from strata.core.errors import StrataError, ValidationError
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.disk import BlockDevice
from strata.models.keys import PREDECESSOR_ANNOTATION
from strata.models.pool import BlockDeviceRef, PoolCluster, PoolInstance, PoolSpec, RaidGroup, RaidType

logger = get_logger(__name__)


def claim_if_unclaimed(store: ObjectStore, cluster: PoolCluster, name: str, predecessor: str = "") -> None:
    bd = store.get(BlockDevice, name)
    if not is_block_device_claimed(bd):
        claim_block_device(store, cluster, bd, predecessor=predecessor)


def check_usable(store: ObjectStore, cluster: PoolCluster, name: str) -> None:
    """Raise unless name is claimed (and bound) by this cluster."""
    bd = store.get(BlockDevice, name)
    if not is_claimed_bd_usable(store, cluster, bd):
        raise ValidationError(f"BD {name} cannot be used as it is already claimed but not by this cluster")


def is_group_present(group: RaidGroup, instance: PoolInstance) -> bool:
    """True if any device of group is already in the instance's data groups."""
    names = set(group.device_names())
    return any(
        name in names
        for existing in instance.spec.data_raid_groups
        for name in existing.device_names()
    )


def _try_devices(store: ObjectStore, cluster: PoolCluster, names: List[str], instance: PoolInstance) -> bool:
    for name in names:
        try:
            claim_if_unclaimed(store, cluster, name)
        except StrataError as e:
            logger.error(f"failed to create claim for bd {name}: {e}")
    for name in names:
        try:
            check_usable(store, cluster, name)
        except StrataError as e:
            logger.error(f"could not use bd {name} for expanding pool {instance.name}: {e}")
            return False
    return True


def add_groups(store: ObjectStore, cluster: PoolCluster, pool_spec: PoolSpec, instance: PoolInstance) -> bool:
    """Append data raid groups new to the instance once their devices are usable."""
    changed = False
    for group in pool_spec.data_raid_groups:
        if is_group_present(group, instance):
            continue
        if _try_devices(store, cluster, group.device_names(), instance):
            instance.spec.data_raid_groups.append(group.model_copy(deep=True))
            changed = True
    return changed


def expand_striped_groups(store: ObjectStore, cluster: PoolCluster, pool_spec: PoolSpec,
                          instance: PoolInstance) -> bool:
    """Append new members of stripe groups already on the instance."""
    if pool_spec.pool_config.data_raid_group_type != RaidType.STRIPE:
        return False

    changed = False
    for group in pool_spec.data_raid_groups:
        wanted = set(group.device_names())
        for existing in instance.spec.data_raid_groups:
            present = existing.device_names()
            if not wanted.intersection(present) or len(group.block_devices) <= len(present):
                continue
            added = [name for name in group.device_names() if name not in present]
            for name in added:
                if not _try_devices(store, cluster, [name], instance):
                    break
                existing.block_devices.append(BlockDeviceRef(block_device_name=name))
                changed = True
    return changed


def replaced_group(group: RaidGroup, instance: PoolInstance) -> Optional[RaidGroup]:
    """The instance group that differs from group in exactly one device."""
    wanted = set(group.device_names())
    for existing in instance.spec.data_raid_groups:
        if sum(1 for name in existing.device_names() if name not in wanted) == 1:
            return existing
    return None


def mark_predecessor(store: ObjectStore, cluster: PoolCluster, new_name: str, old_name: str) -> None:
    """Record on the new device's claim which device it replaces."""
    claim_if_unclaimed(store, cluster, new_name, predecessor=old_name)
    claim = cluster_claims(store, cluster.name).get(new_name)
    if claim is not None and claim.annotations.get(PREDECESSOR_ANNOTATION) != old_name:
        claim.metadata.annotations[PREDECESSOR_ANNOTATION] = old_name
        store.update(claim)


def replace_in_group(store: ObjectStore, cluster: PoolCluster, group: RaidGroup, existing: RaidGroup) -> bool:
    """Swap the single replaced device of existing for its replacement."""
    wanted = group.device_names()
    present = existing.device_names()
    old = next((name for name in present if name not in wanted), "")
    new = next((name for name in wanted if name not in present), "")
    if not old or not new:
        raise ValidationError(f"failed to find new block device {{{new}}} or old block device {{{old}}}")

    mark_predecessor(store, cluster, new, old)
    check_usable(store, cluster, new)
    for bdev in existing.block_devices:
        if bdev.block_device_name == old:
            bdev.block_device_name = new
            bdev.dev_link = ""
            return True
    return False


def replace_block_devices(store: ObjectStore, cluster: PoolCluster, pool_spec: PoolSpec,
                          instance: PoolInstance) -> bool:
    spec_devices = set(pool_spec.block_device_names())
    if all(name in spec_devices for group in instance.spec.data_raid_groups for name in group.device_names()):
        return False

    changed = False
    for group in pool_spec.data_raid_groups:
        existing = replaced_group(group, instance)
        if existing is None:
            continue
        try:
            changed = replace_in_group(store, cluster, group, existing) or changed
        except StrataError as e:
            logger.info(
                f"failed to replace block device in raid group type: "
                f"{pool_spec.pool_config.data_raid_group_type.value} error: {e}"
            )
    return changed


def sync_instances(store: ObjectStore, cluster: PoolCluster, instances: List[PoolInstance]) -> List[str]:
    """Apply expansion and replacement edits; returns the updated instance names."""
    by_host: Dict[str, PoolInstance] = {instance.spec.host_name: instance for instance in instances}
    updated = []
    for pool_spec in cluster.spec.pools:
        try:
            node = node_from_selector(store, pool_spec.node_selector)
        except ValidationError as e:
            logger.error(f"could not get node name for node selector {pool_spec.node_selector}: {e}")
            continue
        instance = by_host.get(node)
        if instance is None or instance.is_deleting:
            continue

        changed = replace_block_devices(store, cluster, pool_spec, instance)
        changed = add_groups(store, cluster, pool_spec, instance) or changed
        changed = expand_striped_groups(store, cluster, pool_spec, instance) or changed
        if not changed:
            continue
        try:
            store.update(instance)
        except StrataError as e:
            logger.error(f"could not update pool instance {instance.name}: {e}")
            continue
        updated.append(instance.name)
    return updated
