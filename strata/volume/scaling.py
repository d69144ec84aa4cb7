"""Scaling the replicas of a bound volume up or down.

The desired pool list lives in the volume config's policy; status.pool_info
records the pools that actually carry a confirmed replica. Status only moves
forward once the replica change has been observed.
"""
from typing import List, Optional

from strata.core.errors import ErrorAccumulator, NotFoundError, StrataError, error_wrapf
from strata.core.events import EventRecorder
from strata.core.hashing import hash_value
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.pool import PoolInstance
from strata.models.volume import TargetService, Volume, VolumeConfig, VolumeReplica, ReplicaPhase
from strata.volume.budget import update_budget_for_scaled_volume
from strata.volume.placement import ReplicaInfo, create_replica, replica_name, replica_pool_names

logger = get_logger(__name__)


def list_diff(first: List[str], second: List[str]) -> List[str]:
    """Items of first missing from second, in first's order."""
    exclude = set(second)
    return [item for item in first if item not in exclude]


def is_scale_pending(vc: VolumeConfig) -> bool:
    """True when the desired and confirmed pool lists differ as sets."""
    return set(vc.spec.desired_pool_names()) != set(vc.status.pool_info)


def scale_volume_replicas(store: ObjectStore, recorder: EventRecorder, vc: VolumeConfig) -> VolumeConfig:
    """Dispatch to scale up, scale down or report an unsupported change.

    Pools may be added in any number, but removed only one at a time and
    never together with an addition. Unsupported changes are reported as
    warning events and leave every object untouched.
    """
    added = list_diff(vc.spec.desired_pool_names(), vc.status.pool_info)
    removed = list_diff(vc.status.pool_info, vc.spec.desired_pool_names())

    if not added and not removed:
        return vc
    if added and removed:
        recorder.warning(vc, "Migration", "Migration of volume replicas is not yet supported")
        return vc
    if len(removed) > 1:
        recorder.warning(
            vc, "ScalingVolumeReplicas",
            f"cannot remove {len(removed)} replicas at once ({', '.join(removed)}), "
            f"remove one pool at a time",
        )
        return vc

    try:
        if added:
            vc = scale_up(store, vc)
        else:
            vc = scale_down(store, vc)
    except StrataError as e:
        recorder.warning(vc, "ScalingVolumeReplicas", str(e))
        raise

    recorder.normal(vc, "ScalingVolumeReplicas",
                    f"successfully scaled volume replicas to {len(vc.status.pool_info)}")
    return vc


def scale_up(store: ObjectStore, vc: VolumeConfig) -> VolumeConfig:
    """Add replicas on the new pools, then record them once all exist."""
    wanted = len(vc.spec.policy.replica_pool_info)
    try:
        volume = store.get(Volume, vc.name)
    except NotFoundError as e:
        raise error_wrapf(e, f"failed to get volume {vc.name}")

    if volume.spec.desired_replication_factor < wanted:
        logger.info(f"Raising desired replication factor of {vc.name} to {wanted}")
        volume.spec.desired_replication_factor = wanted
        volume = store.update(volume)

    handle_replica_creation(store, vc, volume)
    return update_with_scaled_up_info(store, vc)


def handle_replica_creation(store: ObjectStore, vc: VolumeConfig, volume: Volume) -> None:
    """Create a Recreate-phase replica on every pool being added."""
    new_pools = list_diff(vc.spec.desired_pool_names(), vc.status.pool_info)
    try:
        service = store.get(TargetService, vc.name)
    except NotFoundError as e:
        raise error_wrapf(e, f"failed to get service object {vc.name}")

    errors = ErrorAccumulator()
    for pool_name in new_pools:
        try:
            pool = store.get(PoolInstance, pool_name)
        except NotFoundError as e:
            logger.error(f"failed to get pool instance {pool_name}: {e}")
            errors.add(f"failed to get pool instance {pool_name}", e)
            continue

        info = ReplicaInfo(
            replica_id=hash_value(f"{volume.name}-{pool_name}"),
            phase=ReplicaPhase.RECREATE,
            zvol_workers=vc.spec.policy.replica.zvol_workers,
        )
        try:
            create_replica(store, service, volume, vc, pool, info)
        except StrataError as e:
            logger.error(f"failed to create new replica on pool {pool_name}: {e}")
            errors.add(f"failed to create new replica on pool {pool_name}", e)

    errors.raise_if_any()


def update_with_scaled_up_info(store: ObjectStore, vc: VolumeConfig) -> VolumeConfig:
    """Append the new pools to status once each carries a replica."""
    new_pools = list_diff(vc.spec.desired_pool_names(), vc.status.pool_info)
    hosting = set(replica_pool_names(store, vc.name))
    if any(name not in hosting for name in new_pools):
        raise StrataError(
            f"scaling replicas from {len(vc.status.pool_info)} "
            f"to {len(vc.spec.policy.replica_pool_info)} in progress"
        )

    vc.status.pool_info = vc.status.pool_info + new_pools
    try:
        return update_budget_for_scaled_volume(store, vc)
    except StrataError as e:
        raise error_wrapf(e, "failed to handle post volume replicas scale up process")


def get_scale_down_replica(store: ObjectStore, vc: VolumeConfig) -> Optional[VolumeReplica]:
    """Replica on the first pool dropped from the desired list, if it still exists."""
    removed = list_diff(vc.status.pool_info, vc.spec.desired_pool_names())
    try:
        return store.get(VolumeReplica, replica_name(vc.name, removed[0]))
    except NotFoundError:
        return None


def scale_down(store: ObjectStore, vc: VolumeConfig) -> VolumeConfig:
    """Remove one replica; the object goes only after the data path lets go of it."""
    wanted = len(vc.spec.policy.replica_pool_info)
    try:
        volume = store.get(Volume, vc.name)
    except NotFoundError as e:
        raise error_wrapf(e, f"failed to get volume {vc.name}")

    replica = get_scale_down_replica(store, vc)

    if volume.spec.desired_replication_factor > wanted:
        volume.spec.desired_replication_factor = wanted
        if replica is not None:
            volume.spec.known_replicas.pop(replica.spec.replica_id, None)
        volume = store.update(volume)
        logger.info(f"Lowered desired replication factor of {vc.name} to {wanted}")

    if volume.is_scale_down_in_progress():
        raise StrataError(
            f"Scaling down volume replicas from {len(vc.status.pool_info)} to {wanted} is in progress"
        )

    if replica is not None:
        try:
            store.delete(VolumeReplica, replica.name)
        except NotFoundError:
            logger.debug(f"Replica {replica.name} already deleted")
        else:
            logger.info(f"Deleted replica {replica.name}")

    vc.status.pool_info = vc.spec.desired_pool_names()
    try:
        return update_budget_for_scaled_volume(store, vc)
    except StrataError as e:
        raise error_wrapf(e, "failed to handle post volume replicas scale down process")
