"""Disruption budgets protecting the pools of HA volumes.

One budget covers one exact set of pools and is shared by every volume
whose replicas live on that set. Volumes point at their budget through a
label, which is also how the last user of a budget is found.
"""
from typing import Dict, List

from strata.core.errors import NotFoundError
from strata.core.logger import get_logger
from strata.core.selectors import label_selector_matches, selector_string
from strata.core.store import ObjectStore
from strata.models.budget import DisruptionBudget, DisruptionBudgetSpec, LabelSelector, SelectorRequirement
from strata.models.keys import (
    APP_LABEL,
    CLUSTER_LABEL,
    DISRUPTION_BUDGET_LABEL,
    DOMAIN,
    POOL_APP,
    POOL_INSTANCE_LABEL,
)
from strata.models.meta import ObjectMeta
from strata.models.volume import VolumeConfig
from strata.volume.placement import cluster_name

logger = get_logger(__name__)

MIN_HA_REPLICA_COUNT = 3


def is_ha(vc: VolumeConfig) -> bool:
    """HA when confirmed pools (or, before any, requested replicas) reach 3."""
    if vc.status.pool_info:
        return len(vc.status.pool_info) >= MIN_HA_REPLICA_COUNT
    return vc.spec.replica_count >= MIN_HA_REPLICA_COUNT


def pool_pod_labels(pool_name: str) -> Dict[str, str]:
    """Labels carried by the workload serving a pool."""
    return {APP_LABEL: POOL_APP, POOL_INSTANCE_LABEL: pool_name}


def budget_labels(cluster: str, pool_names: List[str]) -> Dict[str, str]:
    labels = {f"{DOMAIN}/{name}": "true" for name in pool_names}
    labels[CLUSTER_LABEL] = cluster
    return labels


def budget_selector(pool_names: List[str]) -> LabelSelector:
    return LabelSelector(
        match_labels={APP_LABEL: POOL_APP},
        match_expressions=[
            SelectorRequirement(key=POOL_INSTANCE_LABEL, operator="In", values=list(pool_names)),
        ],
    )


def budget_pools(budget: DisruptionBudget) -> List[str]:
    for requirement in budget.spec.selector.match_expressions:
        if requirement.key == POOL_INSTANCE_LABEL:
            return list(requirement.values)
    return []


def protects(budget: DisruptionBudget, pool_name: str) -> bool:
    return label_selector_matches(budget.spec.selector, pool_pod_labels(pool_name))


def get_or_create_budget(store: ObjectStore, cluster: str, pool_names: List[str]) -> DisruptionBudget:
    """Budget covering exactly pool_names, created if no such budget exists."""
    labels = budget_labels(cluster, pool_names)
    wanted = set(pool_names)
    for budget in store.list(DisruptionBudget, selector=selector_string(labels)):
        if set(budget_pools(budget)) == wanted:
            return budget

    budget = DisruptionBudget(
        metadata=ObjectMeta(generate_name=f"{cluster}-", labels=labels),
        spec=DisruptionBudgetSpec(max_unavailable=1, selector=budget_selector(pool_names)),
    )
    created = store.create(budget)
    logger.info(f"Created disruption budget {created.name} for pools {sorted(wanted)}")
    return created


def delete_budget_if_not_in_use(store: ObjectStore, vc: VolumeConfig) -> None:
    """Delete the volume's budget if this volume is its only user."""
    name = vc.labels.get(DISRUPTION_BUDGET_LABEL, "")
    if not name:
        return
    users = store.list(VolumeConfig, selector={DISRUPTION_BUDGET_LABEL: name})
    if len(users) != 1:
        return
    try:
        store.delete(DisruptionBudget, name)
    except NotFoundError:
        return
    logger.info(f"Deleted disruption budget {name} of volume {vc.name}")


def get_update_budget_for_volume(store: ObjectStore, vc: VolumeConfig) -> str:
    """Release the volume's old budget if unused and return the one it needs now.

    Returns "" for volumes that are not HA.
    """
    if vc.labels.get(DISRUPTION_BUDGET_LABEL):
        delete_budget_if_not_in_use(store, vc)
    if not is_ha(vc):
        return ""
    return get_or_create_budget(store, cluster_name(vc), vc.status.pool_info).name


def update_budget_for_scaled_volume(store: ObjectStore, vc: VolumeConfig) -> VolumeConfig:
    """Point the volume at the budget matching its pools and save it."""
    name = get_update_budget_for_volume(store, vc)
    vc.metadata.labels.pop(DISRUPTION_BUDGET_LABEL, None)
    if name:
        vc.metadata.labels[DISRUPTION_BUDGET_LABEL] = name
    return store.update(vc)
