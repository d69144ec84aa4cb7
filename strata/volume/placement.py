"""Replica placement across the pools of a cluster."""
import random
from dataclasses import dataclass
from typing import List, Optional, Set

from strata.core.errors import InsufficientResourcesError, NotFoundError, ValidationError
from strata.core.events import EventRecorder
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.keys import (
    CLONE_LABEL,
    CLUSTER_LABEL,
    CREATED_THROUGH_ANNOTATION,
    CREATED_THROUGH_RESTORE,
    PERSISTENT_VOLUME_LABEL,
    POOL_HOSTNAME_ANNOTATION,
    POOL_INSTANCE_LABEL,
    POOL_INSTANCE_UID_LABEL,
    RESTORE_VOLUME_ANNOTATION,
    SNAPSHOT_NAME_ANNOTATION,
    SOURCE_VOLUME_ANNOTATION,
    VERSION,
    VERSION_LABEL,
    VOLUME_LABEL,
)
from strata.models.meta import ObjectMeta
from strata.models.pool import PoolInstance
from strata.models.volume import (
    ReplicaPhase,
    TargetService,
    Volume,
    VolumeConfig,
    VolumePolicySpec,
    VolumeReplica,
    VolumeReplicaSpec,
    VolumeReplicaStatus,
)

logger = get_logger(__name__)


@dataclass
class ReplicaInfo:
    """Per-replica values that differ between first placement and scale up."""
    replica_id: str = ""
    phase: ReplicaPhase = ReplicaPhase.EMPTY
    zvol_workers: str = ""


def replica_name(volume_name: str, pool_name: str) -> str:
    return f"{volume_name}-{pool_name}"


def cluster_name(vc: VolumeConfig) -> str:
    name = vc.labels.get(CLUSTER_LABEL, "")
    if not name:
        raise ValidationError(f"failed to get pool cluster name from volume config {vc.name}")
    return name


def list_replicas(store: ObjectStore, volume_name: str) -> List[VolumeReplica]:
    return store.list(VolumeReplica, selector={PERSISTENT_VOLUME_LABEL: volume_name})


def replica_pool_names(store: ObjectStore, volume_name: str) -> List[str]:
    """Pools hosting a replica of the volume."""
    names = []
    for replica in list_replicas(store, volume_name):
        pool = replica.labels.get(POOL_INSTANCE_LABEL, "")
        if pool:
            names.append(pool)
    return names


def pending_replica_count(store: ObjectStore, vc: VolumeConfig) -> int:
    return vc.spec.replica_count - len(list_replicas(store, vc.name))


def list_cluster_pools(store: ObjectStore, cluster: str) -> List[PoolInstance]:
    return store.list(PoolInstance, selector={CLUSTER_LABEL: cluster})


def policy_based_pools(pools: List[PoolInstance], pool_names: List[str]) -> List[PoolInstance]:
    """Pools named by the policy, in policy order."""
    by_name = {pool.name: pool for pool in pools}
    return [by_name[name] for name in pool_names if name in by_name]


def usable_pools(store: ObjectStore, volume_name: str, pools: List[PoolInstance]) -> List[PoolInstance]:
    """Pools not yet hosting a replica of the volume."""
    used: Set[str] = set(replica_pool_names(store, volume_name))
    return [pool for pool in pools if pool.name not in used]


def usable_pools_for_clone(store: ObjectStore, volume_name: str, source_volume: str,
                           pools: List[PoolInstance]) -> List[PoolInstance]:
    """Pools hosting the source volume but not yet the clone."""
    source_pools = set(replica_pool_names(store, source_volume))
    return [
        pool for pool in usable_pools(store, volume_name, pools)
        if pool.name in source_pools
    ]


def randomize_pools(pools: List[PoolInstance], rng: Optional[random.Random] = None) -> List[PoolInstance]:
    shuffled = list(pools)
    (rng or random).shuffle(shuffled)
    return shuffled


def prioritize_pools(node_name: str, pools: List[PoolInstance]) -> List[PoolInstance]:
    """Swap the pool on node_name to the front; the rest keep their order."""
    pools = list(pools)
    for i, pool in enumerate(pools):
        if pool.spec.host_name == node_name:
            pools[0], pools[i] = pools[i], pools[0]
            break
    return pools


def create_replica(store: ObjectStore, service: TargetService, volume: Volume,
                   vc: VolumeConfig, pool: PoolInstance, info: ReplicaInfo) -> VolumeReplica:
    """Get or create the replica of volume on pool."""
    name = replica_name(volume.name, pool.name)
    try:
        return store.get(VolumeReplica, name)
    except NotFoundError:
        pass

    labels = {
        POOL_INSTANCE_LABEL: pool.name,
        POOL_INSTANCE_UID_LABEL: pool.metadata.uid,
        VOLUME_LABEL: volume.name,
        PERSISTENT_VOLUME_LABEL: volume.name,
        VERSION_LABEL: VERSION,
    }
    annotations = {POOL_HOSTNAME_ANNOTATION: pool.spec.host_name}

    source_volume, snapshot = vc.source_details
    if source_volume:
        annotations[SOURCE_VOLUME_ANNOTATION] = source_volume
        annotations[SNAPSHOT_NAME_ANNOTATION] = snapshot
        labels[CLONE_LABEL] = "true"
    if vc.annotations.get(CREATED_THROUGH_ANNOTATION) == CREATED_THROUGH_RESTORE:
        annotations[RESTORE_VOLUME_ANNOTATION] = "true"

    replica = VolumeReplica(
        metadata=ObjectMeta(name=name, labels=labels, annotations=annotations),
        spec=VolumeReplicaSpec(
            target_ip=service.spec.cluster_ip,
            replica_id=info.replica_id,
            capacity=vc.spec.capacity,
            zvol_workers=info.zvol_workers,
        ),
        status=VolumeReplicaStatus(phase=info.phase),
    )
    created = store.create(replica)
    logger.info(f"Created replica {name} with phase '{info.phase.value}' on pool {pool.name}")
    return created


def distribute_replicas(
    store: ObjectStore,
    recorder: EventRecorder,
    pending: int,
    vc: VolumeConfig,
    service: TargetService,
    volume: Volume,
    policy: VolumePolicySpec,
    rng: Optional[random.Random] = None,
) -> List[VolumeReplica]:
    """Create `pending` replicas of the volume on distinct usable pools.

    Nothing is created unless enough usable pools exist for all of them.

    Raises:
        ValidationError: if the policy names the wrong number of pools
        InsufficientResourcesError: if fewer usable pools than pending replicas
    """
    info = ReplicaInfo(phase=ReplicaPhase.EMPTY, zvol_workers=policy.replica.zvol_workers)
    cluster = cluster_name(vc)
    pools = list_cluster_pools(store, cluster)

    if policy.replica_pool_info:
        if len(policy.replica_pool_info) != vc.spec.replica_count:
            raise ValidationError(
                f"failed to distribute replicas: incorrect number of pool names in volume policy: "
                f"expected {vc.spec.replica_count} got {len(policy.replica_pool_info)}"
            )
        pools = policy_based_pools(pools, policy.pool_names())

    source_volume, _ = vc.source_details
    if source_volume:
        candidates = usable_pools_for_clone(store, volume.name, source_volume, pools)
    else:
        candidates = usable_pools(store, volume.name, pools)

    candidates = randomize_pools(candidates, rng)

    if policy.provision.replica_affinity:
        recorder.normal(vc, "Provisioning", f"replica affinity is enabled, nodeID is {vc.spec.publish_node_id}")
        candidates = prioritize_pools(vc.spec.publish_node_id, candidates)

    if len(candidates) < pending:
        raise InsufficientResourcesError(
            f"not enough pools are available of provided pool cluster: '{cluster}', "
            f"usable pool count: {len(candidates)} pending replica count: {pending}"
        )

    return [create_replica(store, service, volume, vc, pool, info) for pool in candidates[:pending]]
