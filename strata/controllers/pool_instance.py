"""Node-local controller that realizes one PoolInstance as a pool."""
from typing import List

from strata.core.errors import NotFoundError, PoolImportError, StrataError
from strata.core.logger import get_logger
from strata.core.workqueue import Controller
from strata.models.keys import POOL_PROTECTION_FINALIZER, RECONCILE_DISABLE_ANNOTATION
from strata.models.pool import PoolInstance, PoolPhase
from strata.pool import (
    PoolEngine,
    create_pool,
    delete_pool,
    import_pool,
    refresh_status,
    set_pool_properties,
    update_pool,
)

logger = get_logger(__name__)


def is_reconcile_disabled(instance: PoolInstance) -> bool:
    return instance.annotations.get(RECONCILE_DISABLE_ANNOTATION) == "true"


class PoolInstanceController:
    """Imports, creates, updates and destroys the pool of one instance.

    The engine's node serves exactly one instance, named by instance_name.
    """

    def __init__(self, engine: PoolEngine, instance_name: str):
        self.engine = engine
        self.store = engine.store
        self.recorder = engine.recorder
        self.instance_name = instance_name

    def list_keys(self) -> List[str]:
        try:
            self.store.get(PoolInstance, self.instance_name)
        except NotFoundError:
            return []
        return [self.instance_name]

    def controller(self, workers: int = 1, resync_interval: float = 30.0) -> Controller:
        controller = Controller("pool-instance", self.reconcile, self.list_keys,
                                workers=workers, resync_interval=resync_interval)
        return controller.watch(self.store, PoolInstance.kind, names={self.instance_name})

    def reconcile(self, name: str) -> None:
        try:
            instance = self.store.get(PoolInstance, name)
        except NotFoundError:
            logger.info(f"Pool instance '{name}' in work queue no longer exists")
            return

        if is_reconcile_disabled(instance):
            self.recorder.warning(
                instance, "SkippingReconcile",
                f"reconcile is disabled via {RECONCILE_DISABLE_ANNOTATION!r} annotation",
            )
            return

        if instance.is_deleting:
            self.destroy(instance)
            return

        if instance.add_finalizer(POOL_PROTECTION_FINALIZER):
            instance = self.store.update(instance)
            logger.info(f"Added finalizer {POOL_PROTECTION_FINALIZER} to {instance.name}")

        try:
            imported = import_pool(self.engine, instance)
        except PoolImportError as e:
            if instance.status.phase not in (PoolPhase.EMPTY, PoolPhase.PENDING):
                self.recorder.warning(instance, "FailedImport", f"Failed to import pool due to '{e}'")
                raise
            logger.info(f"No existing pool for {instance.name}, creating one")
            imported = False

        if imported:
            self.update(instance)
            return

        self.create(instance)

    def update(self, instance: PoolInstance) -> PoolInstance:
        """Replacement and expansion, then status and compression."""
        try:
            instance = update_pool(self.engine, instance)
        except StrataError as e:
            self.recorder.warning(instance, "FailedSynced", f"Failed to update pool due to {e}")
            instance = self.store.get(PoolInstance, instance.name)

        instance = refresh_status(self.engine, instance)
        self.sync_compression(instance)
        return instance

    def create(self, instance: PoolInstance) -> PoolInstance:
        try:
            create_pool(self.engine, instance)
        except StrataError as e:
            self.recorder.warning(instance, "FailCreate", f"Failed to create pool due to '{e}'")
            try:
                delete_pool(self.engine, instance)
            except StrataError as cleanup_error:
                logger.error(f"Failed to clean up partial pool {self.engine.pool_name}: {cleanup_error}")
            raise

        self.recorder.normal(instance, "Created", "Pool created successfully")
        return refresh_status(self.engine, instance)

    def sync_compression(self, instance: PoolInstance) -> None:
        compression = instance.spec.pool_config.compression
        try:
            set_pool_properties(self.engine, compression)
        except StrataError as e:
            self.recorder.warning(
                instance, "FailedToSetCompression",
                f"Failed to set compression {compression} to the pool {self.engine.pool_name} : {e}",
            )

    def destroy(self, instance: PoolInstance) -> None:
        """Destroy the pool and release the instance for cleanup."""
        if not instance.has_finalizer(POOL_PROTECTION_FINALIZER):
            return
        try:
            delete_pool(self.engine, instance)
        except StrataError as e:
            self.recorder.warning(instance, "FailDestroy", f"Failed to delete pool due to '{e}'")
            raise

        instance.remove_finalizer(POOL_PROTECTION_FINALIZER)
        self.store.update(instance)
        logger.info(f"Pool {self.engine.pool_name} of {instance.name} deleted successfully")
