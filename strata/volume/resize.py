"""Volume capacity expansion."""
from strata.core.errors import StrataError
from strata.core.events import EventRecorder
from strata.core.logger import get_logger
from strata.core.store import ObjectStore, object_patch
from strata.models.meta import Condition, ConditionStatus, set_condition
from strata.models.volume import ResizeConditionType, Volume, VolumeConfig

logger = get_logger(__name__)

RESIZE_CONDITIONS = {t.value for t in ResizeConditionType}


def needs_resize(vc: VolumeConfig) -> bool:
    return vc.spec.capacity > vc.status.capacity


def merge_resize_conditions(conditions, resize_conditions):
    """Replace the resize conditions of a list, keeping all others."""
    kept = [c for c in conditions if c.type not in RESIZE_CONDITIONS]
    for condition in resize_conditions:
        kept = set_condition(kept, condition)
    return kept


def patch_volume_config_status(store: ObjectStore, old: VolumeConfig, new: VolumeConfig) -> VolumeConfig:
    return store.patch(VolumeConfig, old.name, object_patch(old, new), namespace=old.namespace)


def mark_resize_in_progress(store: ObjectStore, vc: VolumeConfig) -> VolumeConfig:
    updated = vc.model_copy(deep=True)
    updated.status.conditions = merge_resize_conditions(
        vc.status.conditions,
        [Condition(type=ResizeConditionType.RESIZING.value, status=ConditionStatus.TRUE)],
    )
    return patch_volume_config_status(store, vc, updated)


def mark_resize_finished(store: ObjectStore, recorder: EventRecorder, vc: VolumeConfig) -> VolumeConfig:
    updated = vc.model_copy(deep=True)
    updated.status.capacity = vc.spec.capacity
    updated.status.conditions = merge_resize_conditions(vc.status.conditions, [])
    vc = patch_volume_config_status(store, vc, updated)
    logger.info(f"Resize of volume config {vc.name} finished")
    recorder.normal(vc, "ResizeSuccess", "Resize volume succeeded")
    return vc


def resize_volume(store: ObjectStore, volume: Volume, capacity: int) -> Volume:
    """Set the target volume's desired capacity with a merge patch."""
    updated = volume.model_copy(deep=True)
    updated.spec.capacity = capacity
    return store.patch(Volume, volume.name, object_patch(volume, updated), namespace=volume.namespace)


def resize_volume_config(store: ObjectStore, recorder: EventRecorder, vc: VolumeConfig) -> VolumeConfig:
    """Drive one step of a resize.

    The target volume is asked to grow once; completion is detected on a
    later pass when its reported capacity reaches the requested one.
    """
    volume = store.get(Volume, vc.name, namespace=vc.namespace)

    if volume.is_resize_in_progress():
        recorder.normal(vc, ResizeConditionType.RESIZING.value, f"Resize already in progress {vc.name}")
        logger.warning(
            f"Resize already in progress on {vc.name} from: {volume.status.capacity} to: {volume.spec.capacity}"
        )
        return vc

    if volume.status.capacity >= vc.spec.capacity:
        return mark_resize_finished(store, recorder, vc)

    vc = mark_resize_in_progress(store, vc)
    recorder.normal(vc, ResizeConditionType.RESIZING.value, f"Resizing volume {vc.name}")

    try:
        resize_volume(store, volume, vc.spec.capacity)
    except StrataError as e:
        recorder.warning(vc, "ResizeFailed", str(e))
        raise
    return vc
