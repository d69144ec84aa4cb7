"""Disk replacement, resilver tracking and pool expansion."""
from typing import Dict, List, Optional

from strata.core import zcmd
from strata.core.errors import CommandError, StrataError, TransientError, error_wrapf
from strata.core.logger import get_logger
from strata.models.disk import BlockDeviceClaim
from strata.models.keys import CLUSTER_FINALIZER, CLUSTER_LABEL, PREDECESSOR_ANNOTATION
from strata.models.meta import Condition, ConditionStatus, get_condition, set_condition
from strata.models.pool import ConditionType, PoolInstance, RaidType
from strata.models.topology import Topology, VdevState
from strata.pool.create import add_raid_group
from strata.pool.engine import PoolEngine

logger = get_logger(__name__)

REPLACEMENT_IN_PROGRESS = "BlockDeviceReplacementInprogress"
REPLACEMENT_SUCCEEDED = "BlockDeviceReplacementSucceess"
EXPANSION_IN_PROGRESS = "PoolExpansionInProgress"
EXPANSION_SUCCEEDED = "PoolExpansionSuccessful"


def replace_pool_vdev(engine: PoolEngine, old_paths: List[str], new_paths: List[str]) -> str:
    """Replace the vdev known by old_paths with new_paths[0].

    Nothing is replaced when the new device is already part of the pool;
    its path in the pool is returned instead. With no old paths there is
    nothing to replace and "" is returned.
    """
    if not new_paths:
        raise StrataError("Empty path for vdev")

    topology = engine.topology()
    used_path, is_used = topology.first_used(new_paths)
    if is_used:
        return used_path

    if not old_paths:
        return ""

    used_path, is_used = topology.first_used(old_paths)
    if not is_used:
        raise StrataError("Old device links are not in use by pool")

    engine.run(zcmd.pool_replace(engine.pool_name, used_path, new_paths[0]))
    logger.info(f"Triggered replacement of {used_path} with {new_paths[0]} on pool {engine.pool_name}")
    return new_paths[0]


def is_resilvering_in_progress(engine: PoolEngine, path: str) -> bool:
    """True unless the device at path is known to be fully resilvered.

    Anything that cannot be confirmed (no topology, device missing) counts
    as still in progress.
    """
    topology = engine.optional_topology()
    if topology is None:
        return True
    vdev = topology.get_vdev(path) if path else None
    if vdev is None:
        return True
    # A device that was never replaced has no scan information.
    if not vdev.scan_stats:
        return False
    if vdev.scan_processed == 0:
        return False
    if vdev.is_resilver_finished():
        return False
    return True


def clean_up_replacement_marks(engine: PoolEngine, old_claim: Optional[BlockDeviceClaim],
                               new_claim: BlockDeviceClaim) -> None:
    """Release the predecessor's claim and clear the predecessor annotation."""
    store = engine.store
    if old_claim is not None:
        if old_claim.remove_finalizer(CLUSTER_FINALIZER):
            old_claim = store.update(old_claim)
        store.delete(BlockDeviceClaim, old_claim.name)
        logger.info(
            f"Triggered deletion on claim {old_claim.name} of block device {old_claim.spec.block_device_name}"
        )

    new_claim.metadata.annotations.pop(PREDECESSOR_ANNOTATION, None)
    store.update(new_claim)
    logger.info(f"Cleared replacement marks on claim {new_claim.name}")


def _claims_by_device(engine: PoolEngine, instance: PoolInstance) -> Dict[str, BlockDeviceClaim]:
    claims = engine.store.list(
        BlockDeviceClaim, selector={CLUSTER_LABEL: instance.labels.get(CLUSTER_LABEL, "")}
    )
    return {claim.spec.block_device_name: claim for claim in claims}


def update_pool(engine: PoolEngine, instance: PoolInstance) -> PoolInstance:
    """Carry out pending disk replacements, then expand the pool.

    Every block device is checked even if an earlier one failed; failures
    are combined and raised at the end, after the instance is saved.
    """
    err: Optional[Exception] = None
    replacement_seen = False
    replacing = 0
    changed = False
    claims = _claims_by_device(engine, instance)

    for group, _ in instance.raid_groups():
        for bdev in group.block_devices:
            claim = claims.get(bdev.block_device_name)
            if claim is None:
                err = error_wrapf(err, f"Failed to get claim of block device {bdev.block_device_name}")
                continue

            predecessor = claim.annotations.get(PREDECESSOR_ANNOTATION, "")
            old_paths: List[str] = []
            if predecessor:
                try:
                    old_paths = engine.device_paths(predecessor)
                except TransientError as e:
                    err = error_wrapf(err, f"Failed to check bdev change {bdev.block_device_name}.. {e}")
                    continue
                replacement_seen = True
                replacing += 1

            disk_path = ""
            try:
                new_paths = engine.device_paths(bdev.block_device_name)
                disk_path = replace_pool_vdev(engine, old_paths, new_paths)
            except (StrataError, ValueError) as e:
                err = error_wrapf(err, f"Failed to replace bdev for {bdev.block_device_name}.. {e}")
                continue

            if disk_path and disk_path != bdev.dev_link:
                bdev.dev_link = disk_path
                changed = True

            if predecessor:
                engine.recorder.normal(
                    instance, "BlockDeviceReplacement",
                    f"Replacement of {predecessor} BlockDevice with {bdev.block_device_name} BlockDevice is in-Progress",
                )
                if not is_resilvering_in_progress(engine, disk_path):
                    try:
                        clean_up_replacement_marks(engine, claims.get(predecessor), claim)
                    except TransientError as e:
                        err = error_wrapf(
                            err, f"Failed cleanup replacement marks of replaced blockdevice {bdev.block_device_name}.. {e}"
                        )
                    else:
                        replacing -= 1
                        engine.recorder.normal(
                            instance, "BlockDeviceReplacement",
                            f"Resilvering is successful on BlockDevice {bdev.block_device_name}",
                        )

    if replacement_seen:
        if replacing > 0:
            condition = Condition(
                type=ConditionType.DISK_REPLACEMENT.value,
                status=ConditionStatus.TRUE,
                reason=REPLACEMENT_IN_PROGRESS,
                message=f"Resilvering {replacing} no.of blockdevices... error: {err}",
            )
        else:
            condition = Condition(
                type=ConditionType.DISK_REPLACEMENT.value,
                status=ConditionStatus.FALSE,
                reason=REPLACEMENT_SUCCEEDED,
                message="Blockdevice replacement was successfully completed",
            )
        instance.status.conditions = set_condition(instance.status.conditions, condition)
        changed = True

    if changed:
        try:
            instance = engine.store.update(instance)
        except TransientError as e:
            err = error_wrapf(err, f"Failed to update object.. {e}")

    try:
        instance = expand_pool(engine, instance)
    except StrataError as e:
        engine.recorder.warning(instance, "PoolExpansion", f"Failed to expand pool... Error: {e}")
        err = error_wrapf(err, f"Pool expansion... {e}")

    if err is not None:
        raise err
    return instance


def expand_pool(engine: PoolEngine, instance: PoolInstance) -> PoolInstance:
    """Add raid groups, or stripe members, that are not yet in the pool."""
    try:
        topology = engine.topology()
    except (CommandError, ValueError) as e:
        raise StrataError(f"Failed to fetch pool topology.. {e}") from e

    err: Optional[Exception] = None
    triggered = False

    for group, is_write_cache in instance.raid_groups():
        raid_type = instance.group_type(is_write_cache)
        unused_paths: List[str] = []
        unused_names: List[str] = []
        whole_group = True

        for bdev in group.block_devices:
            paths = engine.device_paths(bdev.block_device_name)
            _, used = topology.first_used(paths)
            if used:
                whole_group = False
            else:
                unused_paths.append(paths[0])
                unused_names.append(bdev.block_device_name)

        message = ""
        if whole_group:
            triggered = True
            try:
                add_raid_group(engine, group, raid_type, is_write_cache)
            except CommandError as e:
                err = error_wrapf(err, f"Failed to add raidGroup {group.device_names()}.. {e}")
            else:
                message = (
                    f"Pool Expanded Successfully By Adding RaidGroup With BlockDevices: "
                    f"{group.device_names()} pool type: {raid_type.value}"
                )
        elif unused_paths and raid_type is RaidType.STRIPE:
            triggered = True
            try:
                engine.run(zcmd.pool_add(engine.pool_name, "", unused_paths, log=is_write_cache))
            except CommandError as e:
                err = error_wrapf(err, f"Failed to add devlist {unused_paths}.. {e}")
            else:
                message = (
                    f"Pool Expanded Successfully By Adding BlockDevices: "
                    f"{unused_names} pool type: {raid_type.value}"
                )

        if message:
            engine.recorder.normal(instance, "PoolExpansion", message)

    current = get_condition(instance.status.conditions, ConditionType.POOL_EXPANSION.value)
    new_condition = None
    if triggered:
        new_condition = Condition(
            type=ConditionType.POOL_EXPANSION.value,
            status=ConditionStatus.TRUE,
            reason=EXPANSION_IN_PROGRESS,
            message=f"Pool expansion is in progress because of blockdevice/raid group addition error: {err}",
        )
    elif current is not None and current.reason != EXPANSION_SUCCEEDED:
        new_condition = Condition(
            type=ConditionType.POOL_EXPANSION.value,
            status=ConditionStatus.FALSE,
            reason=EXPANSION_SUCCEEDED,
            message="Pool expansion was successful by adding blockdevices/raid groups",
        )

    if new_condition is not None:
        instance.status.conditions = set_condition(instance.status.conditions, new_condition)
        instance = engine.store.update(instance)

    if err is not None:
        raise err
    return instance


def get_unavailable_disks(engine: PoolEngine, instance: PoolInstance) -> List[str]:
    """Block devices of the instance whose vdev is not healthy."""
    topology: Topology = engine.topology()
    faulted = []
    for group, _ in instance.raid_groups():
        for bdev in group.block_devices:
            if not bdev.dev_link:
                continue
            vdev = topology.get_vdev(bdev.dev_link)
            if vdev is None:
                logger.error(f"BlockDevice {bdev.block_device_name} doesn't exist in pool {engine.pool_name}")
                continue
            if vdev.state != VdevState.HEALTHY:
                engine.recorder.warning(
                    instance, "DeviceState",
                    f"{bdev.block_device_name} device was in {vdev.state_string} state",
                )
                faulted.append(bdev.block_device_name)
    return faulted
