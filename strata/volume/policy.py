"""Volume policy lookup, defaulting and drift detection."""
from strata.core.hashing import hash_object
from strata.core.store import ObjectStore
from strata.models.keys import TEMPLATE_HASH_LABEL, VOLUME_POLICY_ANNOTATION
from strata.models.volume import VolumeConfig, VolumePolicy, VolumePolicySpec

DEFAULT_QUEUE_DEPTH = "32"
DEFAULT_IO_WORKERS = 6


def apply_policy_defaults(spec: VolumePolicySpec) -> VolumePolicySpec:
    """Fill in target tunables left unset."""
    if not spec.target.queue_depth:
        spec.target.queue_depth = DEFAULT_QUEUE_DEPTH
    if spec.target.io_workers <= 0:
        spec.target.io_workers = DEFAULT_IO_WORKERS
    return spec


def get_volume_policy(store: ObjectStore, vc: VolumeConfig) -> VolumePolicySpec:
    """Policy for vc: the named policy if annotated, else its inline one.

    Raises:
        NotFoundError: if the annotated policy does not exist
    """
    policy_name = vc.annotations.get(VOLUME_POLICY_ANNOTATION, "")
    if policy_name:
        spec = store.get(VolumePolicy, policy_name).spec
    else:
        spec = vc.spec.policy.model_copy(deep=True)
    return apply_policy_defaults(spec)


def policy_hash(spec: VolumePolicySpec) -> str:
    return hash_object(spec.model_dump(mode="json"))


def add_policy_hash(vc: VolumeConfig) -> None:
    vc.metadata.labels[TEMPLATE_HASH_LABEL] = policy_hash(vc.spec.policy)


def is_policy_changed(vc: VolumeConfig) -> bool:
    return vc.labels.get(TEMPLATE_HASH_LABEL) != policy_hash(vc.spec.policy)
