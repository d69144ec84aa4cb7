"""Controller that provisions, scales, resizes and retires volumes."""
import random
from typing import List, Optional

from strata.core.errors import InsufficientResourcesError, NotFoundError, StrataError, ValidationError, error_wrapf
from strata.core.events import EventRecorder
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.core.workqueue import Controller
from strata.models.keys import DISRUPTION_BUDGET_LABEL, VOLUME_CONFIG_FINALIZER
from strata.models.volume import Volume, VolumeConfig, VolumeConfigPhase, ReplicaPoolInfo
from strata.volume.budget import delete_budget_if_not_in_use, get_or_create_budget, is_ha
from strata.volume.placement import cluster_name, distribute_replicas, pending_replica_count, replica_pool_names
from strata.volume.policy import add_policy_hash, apply_policy_defaults, get_volume_policy, is_policy_changed
from strata.volume.provision import TargetDeployer, get_or_create_target_service, get_or_create_volume
from strata.volume.resize import needs_resize, resize_volume_config
from strata.volume.scaling import is_scale_pending, scale_volume_replicas

logger = get_logger(__name__)


def add_replica_pool_info(vc: VolumeConfig, pool_names: List[str]) -> None:
    """Record pools hosting replicas in the policy (if missing) and in status."""
    known = set(vc.spec.desired_pool_names())
    for name in pool_names:
        if name not in known:
            vc.spec.policy.replica_pool_info.append(ReplicaPoolInfo(pool_name=name))
            known.add(name)
    for name in vc.spec.desired_pool_names():
        if name not in vc.status.pool_info:
            vc.status.pool_info.append(name)


def is_deletion_candidate(vc: VolumeConfig) -> bool:
    return vc.is_deleting and vc.has_finalizer(VOLUME_CONFIG_FINALIZER)


class VolumeConfigController:
    """Reconciles VolumeConfig objects into targets, replicas and budgets."""

    def __init__(self, store: ObjectStore, recorder: EventRecorder,
                 deployer: Optional[TargetDeployer] = None, rng: Optional[random.Random] = None):
        self.store = store
        self.recorder = recorder
        self.deployer = deployer or TargetDeployer()
        self.rng = rng

    def list_keys(self) -> List[str]:
        return [vc.name for vc in self.store.list(VolumeConfig)]

    def controller(self, workers: int = 2, resync_interval: float = 30.0) -> Controller:
        controller = Controller("volume-config", self.reconcile, self.list_keys,
                                workers=workers, resync_interval=resync_interval)
        return controller.watch(self.store, VolumeConfig.kind)

    def reconcile(self, name: str) -> None:
        """Sync one volume config.

        Validation and capacity problems are reported as events and left
        for the object to change or the next resync; anything else raises so
        the key is retried with backoff.
        """
        try:
            vc = self.store.get(VolumeConfig, name)
        except NotFoundError:
            logger.info(f"Volume config '{name}' has been deleted")
            return

        try:
            self.sync(vc)
        except (ValidationError, InsufficientResourcesError) as e:
            logger.warning(f"Volume config {name} cannot be provisioned yet: {e}")

    def sync(self, vc: VolumeConfig) -> None:
        if is_deletion_candidate(vc):
            logger.info(f"Removing finalizer from volume config {vc.name}")
            try:
                self.remove_finalizer(vc)
            except StrataError as e:
                self.recorder.warning(vc, "DeProvisioning", str(e))
            return
        if vc.is_deleting:
            return

        if vc.add_finalizer(VOLUME_CONFIG_FINALIZER):
            vc = self.store.update(vc)

        if vc.status.phase == VolumeConfigPhase.PENDING:
            logger.info(f"Provisioning volume {vc.name}")
            try:
                vc = self.create_volume(vc)
            except StrataError as e:
                self.recorder.warning(vc, "Provisioning", str(e))
                raise

        if needs_resize(vc):
            vc = resize_volume_config(self.store, self.recorder, vc)

        if is_scale_pending(vc):
            try:
                vc = scale_volume_replicas(self.store, self.recorder, vc)
            except StrataError as e:
                # Already reported; the next pass picks the scale up again.
                logger.info(f"Scaling of volume {vc.name} not finished: {e}")
                vc = self.store.get(VolumeConfig, vc.name)

        self.sync_policy_spec(vc)

    def create_volume(self, vc: VolumeConfig) -> VolumeConfig:
        """Provision the target, replicas and budget of a pending volume, then bind it."""
        policy = get_volume_policy(self.store, vc)

        service = get_or_create_target_service(self.store, vc)
        volume = get_or_create_volume(self.store, service, vc, policy)
        self.deployer.get_or_create(volume, policy)

        pending = pending_replica_count(self.store, vc)
        if pending > 0:
            distribute_replicas(self.store, self.recorder, pending, vc, service, volume, policy, self.rng)

        pool_names = replica_pool_names(self.store, vc.name)

        if is_ha(vc):
            try:
                budget = get_or_create_budget(self.store, cluster_name(vc), pool_names)
            except StrataError as e:
                raise error_wrapf(e, f"failed to create disruption budget for volume: {vc.name}")
            vc.metadata.labels[DISRUPTION_BUDGET_LABEL] = budget.name

        vc.spec.volume_ref = volume.name
        vc.spec.policy = policy
        vc.status.phase = VolumeConfigPhase.BOUND
        vc.status.capacity = vc.spec.capacity

        add_replica_pool_info(vc, pool_names)
        add_policy_hash(vc)

        vc = self.store.update(vc)
        self.recorder.normal(vc, "Synced", "Received Resource create event")
        return vc

    def sync_policy_spec(self, vc: VolumeConfig) -> None:
        """Re-apply target tunables when the policy changed since last applied."""
        if not is_policy_changed(vc):
            return

        logger.debug(f"Initiated policy reconcile for volume config {vc.name}")
        try:
            self.apply_target_policy(vc)
        except StrataError as e:
            self.recorder.warning(vc, "PolicySync",
                                  f"failed to patch target deployment for volume config {vc.name}, err {e}")
            raise

        add_policy_hash(vc)
        try:
            vc = self.store.update(vc)
        except StrataError as e:
            self.recorder.warning(vc, "PolicySync", f"failed to update hash label in volume config {vc.name}, err {e}")
            raise
        self.recorder.normal(vc, "PolicySync", f"successfully sync policy for volume config {vc.name}")

    def apply_target_policy(self, vc: VolumeConfig) -> None:
        volume = self.store.get(Volume, vc.name)
        target = apply_policy_defaults(vc.spec.policy.model_copy(deep=True)).target
        if volume.spec.queue_depth != target.queue_depth or volume.spec.io_workers != target.io_workers:
            volume.spec.queue_depth = target.queue_depth
            volume.spec.io_workers = target.io_workers
            volume = self.store.update(volume)
        self.deployer.patch(vc, volume)

    def remove_finalizer(self, vc: VolumeConfig) -> None:
        """Release the volume's budget if HA, then drop the protection finalizer."""
        if is_ha(vc):
            try:
                delete_budget_if_not_in_use(self.store, vc)
            except StrataError as e:
                raise error_wrapf(
                    e, f"failed to verify whether budget {vc.labels.get(DISRUPTION_BUDGET_LABEL, '')} is in use"
                )
        vc.remove_finalizer(VOLUME_CONFIG_FINALIZER)
        self.store.update(vc)
        logger.info(f"Finalizers removed successfully from volume config {vc.name}")
