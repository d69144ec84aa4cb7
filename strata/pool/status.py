"""Pool health, capacity and read-only threshold handling."""
from typing import List

from strata.core import zcmd
from strata.core.errors import CommandError, ConflictError, StrataError
from strata.core.logger import get_logger
from strata.core.retry import retry
from strata.core.store import ObjectStore
from strata.models.meta import Condition, ConditionStatus, remove_condition, set_condition
from strata.models.pool import ConditionType, PoolCapacity, PoolInstance, PoolPhase
from strata.pool.engine import PoolEngine
from strata.pool.properties import set_properties_if_not
from strata.pool.replacement import get_unavailable_disks

logger = get_logger(__name__)

STATUS_UPDATE_ATTEMPTS = 3
STATUS_UPDATE_DELAY = 2.0


def _values(output: str, count: int) -> List[str]:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if len(lines) < count:
        raise StrataError(f"expected {count} property values, got {len(lines)}: {output!r}")
    return lines[:count]


def _to_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise StrataError(f"Invalid {name} value '{value}'") from e


def get_phase(engine: PoolEngine) -> PoolPhase:
    health = _values(engine.run(zcmd.pool_property_get(engine.pool_name, ["health"])), 1)[0]
    return PoolPhase.from_health(health)


def get_capacity(engine: PoolEngine) -> PoolCapacity:
    """Pool capacity in bytes, including the dataset's logical usage."""
    used, free, size = _values(
        engine.run(zcmd.pool_property_get(engine.pool_name, ["allocated", "free", "size"])), 3
    )
    logical = _values(engine.run(zcmd.dataset_property_get(engine.pool_name, ["logicalused"])), 1)[0]
    return PoolCapacity(
        used=_to_int(used, "allocated"),
        free=_to_int(free, "free"),
        total=_to_int(size, "size"),
        logical_used=_to_int(logical, "logicalused"),
    )


def update_read_only_mode(engine: PoolEngine, instance: PoolInstance) -> None:
    """Make the pool read-only once usage crosses the instance's threshold.

    A threshold of 100 disables the check.
    """
    threshold = instance.ro_threshold
    used_percent = instance.status.capacity.used_percent

    if used_percent >= threshold and threshold != 100:
        if not instance.status.read_only:
            set_properties_if_not(engine, engine.pool_name, {"readonly": "on"})
            instance.status.read_only = True
            engine.recorder.warning(
                instance, "PoolReadOnlyThreshold",
                "Pool storage limit reached to threshold. Pool expansion is required to make its replicas RW",
            )
    elif instance.status.read_only:
        set_properties_if_not(engine, engine.pool_name, {"readonly": "off"})
        instance.status.read_only = False
        engine.recorder.normal(
            instance, "PoolReadOnlyThreshold",
            "Pool roThreshold limit has been modified or the pool expanded",
        )


def update_status_eventually(store: ObjectStore, instance: PoolInstance,
                             delay: float = STATUS_UPDATE_DELAY) -> PoolInstance:
    """Write instance.status onto the latest stored object, retrying conflicts."""
    status = instance.status.model_copy(deep=True)

    @retry(max_attempts=STATUS_UPDATE_ATTEMPTS, delay=delay, backoff=1.0, exceptions=(ConflictError,))
    def _update() -> PoolInstance:
        latest = store.get(PoolInstance, instance.name)
        latest.status = status
        return store.update(latest)

    return _update()


def refresh_status(engine: PoolEngine, instance: PoolInstance) -> PoolInstance:
    """Record the pool's phase, capacity and disk health on the instance."""
    instance.status.phase = get_phase(engine)
    instance.status.capacity = get_capacity(engine)
    update_read_only_mode(engine, instance)

    try:
        unavailable = get_unavailable_disks(engine, instance)
    except (CommandError, ValueError) as e:
        logger.error(f"Failed to list unavailable disks of {instance.name}: {e}")
    else:
        if unavailable:
            condition = Condition(
                type=ConditionType.DISK_UNAVAILABLE.value,
                status=ConditionStatus.TRUE,
                reason="DiskUnavailable",
                message=f"Blockdevices {', '.join(unavailable)} are not healthy",
            )
            instance.status.conditions = set_condition(instance.status.conditions, condition)
        else:
            instance.status.conditions = remove_condition(
                instance.status.conditions, ConditionType.DISK_UNAVAILABLE.value
            )

    return update_status_eventually(engine.store, instance)
