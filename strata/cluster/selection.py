"""Choosing nodes for a pool cluster's pools and building their instances."""
import random
import string
from typing import List, Optional, Set, Tuple

from strata.cluster.claims import claim_block_devices
from strata.core.errors import InsufficientResourcesError, StrataError, ValidationError
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.keys import (
    CLUSTER_FINALIZER,
    CLUSTER_LABEL,
    HOSTNAME_LABEL,
    VERSION,
    VERSION_LABEL,
)
from strata.models.meta import ObjectMeta
from strata.models.node import Node
from strata.models.pool import (
    DEFAULT_RO_THRESHOLD,
    PoolCluster,
    PoolInstance,
    PoolInstanceSpec,
    PoolSpec,
)

logger = get_logger(__name__)


def node_host_name(node: Node) -> str:
    return node.labels.get(HOSTNAME_LABEL, node.name)


def node_from_selector(store: ObjectStore, selector) -> str:
    """Host name of the single node matching selector."""
    nodes = store.list(Node, selector=selector)
    if len(nodes) != 1:
        raise ValidationError(f"invalid no.of nodes {len(nodes)} from the given node selectors {selector}")
    return node_host_name(nodes[0])


def cluster_instances(store: ObjectStore, cluster_name: str) -> List[PoolInstance]:
    return store.list(PoolInstance, selector={CLUSTER_LABEL: cluster_name})


def instance_host(instance: PoolInstance) -> str:
    return instance.labels.get(HOSTNAME_LABEL, instance.spec.host_name)


def used_nodes(instances: List[PoolInstance]) -> Set[str]:
    return {instance_host(instance) for instance in instances}


def used_block_devices(instances: List[PoolInstance]) -> Set[str]:
    return {name for instance in instances for name in instance.block_device_names()}


def select_node(store: ObjectStore, cluster: PoolCluster, instances: List[PoolInstance],
                visited: Optional[Set[str]] = None) -> Tuple[PoolSpec, str]:
    """First pool spec whose node and devices carry no instance yet.

    Nodes recorded in visited are skipped and the chosen node is added to
    it, so repeated calls in one pass walk different specs.
    """
    visited = set() if visited is None else visited
    nodes = used_nodes(instances)
    devices = used_block_devices(instances)

    for pool_spec in cluster.spec.pools:
        try:
            node = node_from_selector(store, pool_spec.node_selector)
        except ValidationError as e:
            logger.error(f"could not use node for selectors {pool_spec.node_selector}: {e}")
            continue
        if node in visited:
            continue
        visited.add(node)

        if any(name in devices for name in pool_spec.block_device_names()):
            continue
        if node not in nodes:
            return pool_spec, node

    raise InsufficientResourcesError("no node qualified for pool creation")


def _random_suffix(length: int = 4) -> str:
    return "".join(random.choices(string.ascii_lowercase, k=length))


def build_instance(cluster: PoolCluster, pool_spec: PoolSpec, node: str) -> PoolInstance:
    """Instance for pool_spec on node with cluster-wide defaults filled in."""
    config = pool_spec.pool_config.model_copy(deep=True)
    if config.resources is None:
        config.resources = cluster.spec.resources
    if config.aux_resources is None:
        config.aux_resources = cluster.spec.aux_resources
    if not config.tolerations:
        config.tolerations = list(cluster.spec.tolerations)
    if not config.priority_class_name:
        config.priority_class_name = cluster.spec.priority_class_name
    if config.ro_threshold_limit is None:
        config.ro_threshold_limit = DEFAULT_RO_THRESHOLD

    return PoolInstance(
        metadata=ObjectMeta(
            name=f"{cluster.name}-{_random_suffix()}",
            labels={
                HOSTNAME_LABEL: node,
                CLUSTER_LABEL: cluster.name,
                VERSION_LABEL: VERSION,
            },
            finalizers=[CLUSTER_FINALIZER],
        ),
        spec=PoolInstanceSpec(
            host_name=node,
            pool_config=config,
            data_raid_groups=[g.model_copy(deep=True) for g in pool_spec.data_raid_groups],
            write_cache_raid_groups=[g.model_copy(deep=True) for g in pool_spec.write_cache_raid_groups],
        ),
    )


def new_instance(store: ObjectStore, cluster: PoolCluster, instances: List[PoolInstance],
                 visited: Optional[Set[str]] = None) -> PoolInstance:
    """Select a node, claim its devices and return the unsaved instance."""
    pool_spec, node = select_node(store, cluster, instances, visited)
    instance = build_instance(cluster, pool_spec, node)
    try:
        claim_block_devices(store, cluster, pool_spec.block_device_names())
    except StrataError as e:
        logger.error(f"failed to claim block devices for node {{{node}}}: {e}")
        raise
    return instance


def orphaned_instances(store: ObjectStore, cluster: PoolCluster, instances: List[PoolInstance]) -> List[str]:
    """Instances whose node has no pool spec and that share no data device with any spec."""
    spec_nodes = {node_from_selector(store, pool_spec.node_selector) for pool_spec in cluster.spec.pools}
    spec_devices = {
        name
        for pool_spec in cluster.spec.pools
        for group in pool_spec.data_raid_groups
        for name in group.device_names()
    }

    orphans = []
    for instance in instances:
        if instance.spec.host_name in spec_nodes:
            continue
        data_devices = [name for group in instance.spec.data_raid_groups for name in group.device_names()]
        if any(name in spec_devices for name in data_devices):
            continue
        orphans.append(instance.name)
    return orphans
