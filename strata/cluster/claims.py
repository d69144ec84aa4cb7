"""Block device claims held by pool clusters."""
from typing import Dict, List, Optional, Set

from strata.core.errors import AlreadyExistsError, NotFoundError, StrataError, TransientError, ValidationError
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.disk import BlockDevice, BlockDeviceClaim, BlockDeviceClaimSpec, ClaimPhase, ClaimState
from strata.models.keys import (
    ALLOWED_BD_TAGS_ANNOTATION,
    BLOCK_DEVICE_TAG_LABEL,
    CLUSTER_FINALIZER,
    CLUSTER_LABEL,
    HOSTNAME_LABEL,
    POOL_PROTECTION_FINALIZER,
    PREDECESSOR_ANNOTATION,
)
from strata.models.meta import ObjectMeta
from strata.models.pool import PoolCluster, PoolInstance

logger = get_logger(__name__)


def claim_name(bd: BlockDevice) -> str:
    return f"bdc-{bd.metadata.uid}"


def allowed_tags(cluster: PoolCluster) -> Set[str]:
    """Tags listed in the cluster's comma separated allowed-tags annotation."""
    value = cluster.annotations.get(ALLOWED_BD_TAGS_ANNOTATION, "")
    return {tag.strip() for tag in value.split(",") if tag.strip()}


def check_block_device_tag(cluster: PoolCluster, bd: BlockDevice) -> None:
    """Untagged devices are always usable; tagged ones only if allowed."""
    if BLOCK_DEVICE_TAG_LABEL not in bd.labels:
        return
    tag = bd.labels[BLOCK_DEVICE_TAG_LABEL].strip()
    if not tag:
        raise ValidationError(
            f"failed to create block device claim for bd {{{bd.name}}} as it has empty value for bd tag"
        )
    if tag not in allowed_tags(cluster):
        raise ValidationError(
            f"cannot use bd {{{bd.name}}} as it has tag {tag} but cluster has allowed bd tags as "
            f"{cluster.annotations.get(ALLOWED_BD_TAGS_ANNOTATION, '')!r}"
        )


def is_block_device_claimed(bd: BlockDevice) -> bool:
    return bd.status.claim_state == ClaimState.CLAIMED


def claim_block_device(store: ObjectStore, cluster: PoolCluster, bd: BlockDevice,
                       predecessor: str = "") -> None:
    """Create the cluster's claim on bd; an existing claim is left as is."""
    check_block_device_tag(cluster, bd)

    annotations = {PREDECESSOR_ANNOTATION: predecessor} if predecessor else {}
    claim = BlockDeviceClaim(
        metadata=ObjectMeta(
            name=claim_name(bd),
            labels={CLUSTER_LABEL: cluster.name},
            annotations=annotations,
            finalizers=[CLUSTER_FINALIZER],
        ),
        spec=BlockDeviceClaimSpec(
            block_device_name=bd.name,
            node_name=bd.labels.get(HOSTNAME_LABEL, bd.spec.node_name),
        ),
    )
    try:
        store.create(claim)
    except AlreadyExistsError:
        logger.info(f"Claim for block device {bd.name} already created")
        return
    logger.info(f"Created claim {claim.name} for block device {bd.name} of cluster {cluster.name}")


def is_claimed_bd_usable(store: ObjectStore, cluster: PoolCluster, bd: BlockDevice) -> bool:
    """True if bd is claimed, and the claim belongs to this cluster."""
    if not is_block_device_claimed(bd):
        raise ValidationError(f"block device {{{bd.name}}} is not claimed")
    if not bd.status.claimed_by:
        raise ValidationError(f"empty claim reference found in block device {bd.name}")
    claim = store.get(BlockDeviceClaim, bd.status.claimed_by)
    return claim.labels.get(CLUSTER_LABEL) == cluster.name


def claim_block_devices(store: ObjectStore, cluster: PoolCluster, names: List[str]) -> None:
    """Claim every named block device for the cluster.

    Devices already claimed by this cluster are fine. Raises
    ValidationError for a device owned by another cluster and
    TransientError while any new claim waits to be bound.
    """
    pending = []
    for name in names:
        try:
            bd = store.get(BlockDevice, name)
        except NotFoundError as e:
            raise TransientError(f"error in getting details for BD {{{name}}} whether it is claimed: {e}") from e

        if is_block_device_claimed(bd):
            if not is_claimed_bd_usable(store, cluster, bd):
                raise ValidationError(f"BD {{{name}}} already in use")
            continue

        claim_block_device(store, cluster, bd)
        pending.append(name)

    if pending:
        raise TransientError(
            f"{len(pending)} block device claims are pending, BDs that are pending for claim are: {pending}"
        )


def bind_pending_claims(store: ObjectStore) -> int:
    """Bind pending claims to their free block devices.

    Stands in for the node disk agent that owns block devices. Returns the
    number of claims bound.
    """
    bound = 0
    for claim in store.list(BlockDeviceClaim):
        if claim.is_bound or claim.is_deleting:
            continue
        try:
            bd = store.get(BlockDevice, claim.spec.block_device_name)
        except NotFoundError:
            logger.warning(f"Claim {claim.name} references missing block device {claim.spec.block_device_name}")
            continue

        if is_block_device_claimed(bd) and bd.status.claimed_by != claim.name:
            logger.warning(
                f"Block device {bd.name} is claimed by {bd.status.claimed_by}, claim {claim.name} stays pending"
            )
            continue

        bd.status.claim_state = ClaimState.CLAIMED
        bd.status.claimed_by = claim.name
        store.update(bd)
        claim.status.phase = ClaimPhase.BOUND
        store.update(claim)
        logger.info(f"Bound claim {claim.name} to block device {bd.name}")
        bound += 1
    return bound


def release_orphaned_devices(store: ObjectStore) -> int:
    """Mark devices unclaimed once their claim has been deleted."""
    released = 0
    for bd in store.list(BlockDevice):
        if not is_block_device_claimed(bd) or not bd.status.claimed_by:
            continue
        try:
            store.get(BlockDeviceClaim, bd.status.claimed_by)
        except NotFoundError:
            bd.status.claim_state = ClaimState.UNCLAIMED
            bd.status.claimed_by = ""
            store.update(bd)
            logger.info(f"Released block device {bd.name}")
            released += 1
    return released


def release_claim(store: ObjectStore, claim: BlockDeviceClaim) -> None:
    """Drop the cluster finalizer from a claim, delete it and free its device."""
    if claim.remove_finalizer(CLUSTER_FINALIZER):
        claim = store.update(claim)
    try:
        store.delete(BlockDeviceClaim, claim.name)
    except NotFoundError:
        pass

    try:
        bd = store.get(BlockDevice, claim.spec.block_device_name)
    except NotFoundError:
        return
    if bd.status.claimed_by == claim.name:
        bd.status.claim_state = ClaimState.UNCLAIMED
        bd.status.claimed_by = ""
        store.update(bd)


def cluster_claims(store: ObjectStore, cluster_name: str) -> Dict[str, BlockDeviceClaim]:
    claims = store.list(BlockDeviceClaim, selector={CLUSTER_LABEL: cluster_name})
    return {claim.spec.block_device_name: claim for claim in claims}


def can_clean_up_instance(instance: PoolInstance) -> bool:
    """A deleted instance whose pool is gone but whose cluster still holds it."""
    return (
        instance.is_deleting
        and instance.has_finalizer(CLUSTER_FINALIZER)
        and not instance.has_finalizer(POOL_PROTECTION_FINALIZER)
    )


def clean_up_instances(store: ObjectStore, instances: List[PoolInstance]) -> None:
    """Release claims of destroyed instances and let them go.

    Raises:
        StrataError: listing every deleted instance still waiting for its
            pool to be destroyed
    """
    waiting: List[str] = []
    for instance in instances:
        if can_clean_up_instance(instance):
            claims = cluster_claims(store, instance.labels.get(CLUSTER_LABEL, ""))
            for name in instance.block_device_names():
                claim: Optional[BlockDeviceClaim] = claims.get(name)
                if claim is not None:
                    release_claim(store, claim)
            instance.remove_finalizer(CLUSTER_FINALIZER)
            store.update(instance)
            logger.info(f"Cleanup for pool instance {instance.name} was successful")
        elif instance.is_deleting:
            waiting.append(instance.name)

    if waiting:
        raise StrataError(f"failed to cleanup pool instances {waiting}: waiting for pool to get destroyed")
