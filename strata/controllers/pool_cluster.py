"""Cluster-wide controller turning a PoolCluster into PoolInstances."""
from typing import List, Set

from strata.cluster.claims import (
    bind_pending_claims,
    clean_up_instances,
    cluster_claims,
    release_orphaned_devices,
)
from strata.cluster.operations import sync_instances
from strata.cluster.selection import cluster_instances, new_instance, orphaned_instances
from strata.core.errors import ConflictError, NotFoundError, StrataError
from strata.core.events import EventRecorder
from strata.core.logger import get_logger
from strata.core.retry import retry
from strata.core.store import ObjectStore
from strata.core.workqueue import Controller
from strata.models.keys import CLUSTER_FINALIZER
from strata.models.pool import PoolCluster, PoolClusterStatus, PoolInstance, PoolPhase

logger = get_logger(__name__)


class PoolClusterController:
    """Scales, updates and cleans up the instances of every pool cluster."""

    def __init__(self, store: ObjectStore, recorder: EventRecorder, status_retry_delay: float = 2.0):
        self.store = store
        self.recorder = recorder
        self.status_retry_delay = status_retry_delay

    def list_keys(self) -> List[str]:
        return [cluster.name for cluster in self.store.list(PoolCluster)]

    def controller(self, workers: int = 2, resync_interval: float = 30.0) -> Controller:
        controller = Controller("pool-cluster", self.reconcile, self.list_keys,
                                workers=workers, resync_interval=resync_interval)
        return controller.watch(self.store, PoolCluster.kind)

    def reconcile(self, name: str) -> None:
        try:
            cluster = self.store.get(PoolCluster, name)
        except NotFoundError:
            logger.info(f"Pool cluster '{name}' has been deleted")
            return

        # Claims are bound by the disk agent; in-process that is done here.
        bind_pending_claims(self.store)
        release_orphaned_devices(self.store)

        if cluster.is_deleting:
            try:
                self.handle_deletion(cluster)
            except StrataError as e:
                self.recorder.warning(cluster, "Cleanup", f"Could not sync for cluster deletion: {e}")
                raise
            return

        try:
            clean_up_instances(self.store, cluster_instances(self.store, name))
        except StrataError as e:
            self.recorder.warning(cluster, "PoolCleanup", f"Could not sync cluster: {e}")
            return

        if cluster.add_finalizer(CLUSTER_FINALIZER):
            cluster = self.store.update(cluster)

        instances = [i for i in cluster_instances(self.store, name) if not i.is_deleting]
        if len(instances) < len(cluster.spec.pools):
            self.scale_up(cluster, instances, len(cluster.spec.pools) - len(instances))
        elif len(instances) > len(cluster.spec.pools):
            self.scale_down(cluster, instances)

        updated = sync_instances(self.store, cluster, cluster_instances(self.store, name))
        if updated:
            logger.info(f"Propagated cluster {name} changes to {updated}")

        self.update_status_eventually(cluster)

    def scale_up(self, cluster: PoolCluster, instances: List[PoolInstance], pending: int) -> None:
        visited: Set[str] = set()
        for count in range(1, pending + 1):
            try:
                instance = new_instance(self.store, cluster, instances, visited)
                created = self.store.create(instance)
            except StrataError as e:
                self.recorder.warning(cluster, "Create", f"Pool provisioning failed for {count}/{pending}: {e}")
                logger.error(f"Pool provisioning failed for {count}/{pending} for cluster {cluster.name}: {e}")
                continue
            instances.append(created)
            self.recorder.normal(cluster, "Create", f"Pool Provisioned {count}/{pending}")
            logger.info(f"Pool {created.name} provisioned {count}/{pending} for cluster {cluster.name}")

    def scale_down(self, cluster: PoolCluster, instances: List[PoolInstance]) -> None:
        try:
            orphans = orphaned_instances(self.store, cluster, instances)
        except StrataError as e:
            self.recorder.warning(cluster, "DownScale", f"Pool downscale failed {e}")
            logger.error(f"Pool scale down failed as could not get orphaned instances: {e}")
            return

        for name in orphans:
            self.recorder.normal(cluster, "ScaleDown", f"De-provisioning pool {name}")
            try:
                self.store.delete(PoolInstance, name)
            except NotFoundError:
                logger.info(f"Pool instance {name} already deleted")

    def calculate_status(self, cluster: PoolCluster) -> PoolClusterStatus:
        instances = cluster_instances(self.store, cluster.name)
        return PoolClusterStatus(
            provisioned_instances=len(instances),
            desired_instances=len(cluster.spec.pools),
            healthy_instances=sum(1 for i in instances if i.status.phase == PoolPhase.ONLINE),
        )

    def update_status_eventually(self, cluster: PoolCluster) -> PoolCluster:
        @retry(max_attempts=3, delay=self.status_retry_delay, backoff=1.0, exceptions=(ConflictError,))
        def _update() -> PoolCluster:
            latest = self.store.get(PoolCluster, cluster.name)
            latest.status = self.calculate_status(latest)
            return self.store.update(latest)

        return _update()

    def handle_deletion(self, cluster: PoolCluster) -> None:
        """Delete the cluster's instances, then let the cluster go once they are gone."""
        for instance in cluster_instances(self.store, cluster.name):
            if not instance.is_deleting:
                self.store.delete(PoolInstance, instance.name)
        logger.info(f"Associated pool instances of cluster {cluster.name} deleted")

        if not cluster.has_finalizer(CLUSTER_FINALIZER):
            return

        clean_up_instances(self.store, cluster_instances(self.store, cluster.name))
        remaining = cluster_instances(self.store, cluster.name)
        if remaining:
            raise StrataError(
                f"failed to remove cluster finalizer as pool instances {[i.name for i in remaining]} still exist"
            )

        for claim in cluster_claims(self.store, cluster.name).values():
            if claim.remove_finalizer(CLUSTER_FINALIZER):
                self.store.update(claim)

        cluster.remove_finalizer(CLUSTER_FINALIZER)
        self.store.update(cluster)
        logger.info(f"Removed finalizer from cluster {cluster.name}")
