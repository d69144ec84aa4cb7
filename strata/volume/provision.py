"""Target service and volume provisioning."""
from strata.core.errors import NotFoundError
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models.keys import (
    APP_LABEL,
    PERSISTENT_VOLUME_LABEL,
    SOURCE_VOLUME_ANNOTATION,
    VERSION,
    VERSION_LABEL,
)
from strata.models.meta import ObjectMeta
from strata.models.volume import (
    ServicePort,
    TargetService,
    TargetServiceSpec,
    Volume,
    VolumeConfig,
    VolumePolicySpec,
    VolumeSpec,
)

logger = get_logger(__name__)

ISCSI_PORT = 3260
GRPC_PORT = 7777
MGMT_PORT = 6060
EXPORTER_PORT = 9500

IQN_PREFIX = "iqn.2024-01.io.strata:"


class TargetDeployer:
    """Builds and rolls out the data-path target for a volume.

    The deployment itself lives outside this process; this default only
    logs what would be done.
    """

    def get_or_create(self, volume: Volume, policy: VolumePolicySpec) -> None:
        logger.debug(f"Target deployment for {volume.name} is managed externally")

    def patch(self, vc: VolumeConfig, volume: Volume) -> None:
        logger.debug(f"Target deployment patch for {vc.name} is managed externally")


def consistency_factor(replication_factor: int) -> int:
    """Write quorum for a replication factor."""
    return replication_factor // 2 + 1


def get_or_create_target_service(store: ObjectStore, vc: VolumeConfig) -> TargetService:
    try:
        return store.get(TargetService, vc.name)
    except NotFoundError:
        pass

    labels = {PERSISTENT_VOLUME_LABEL: vc.name, VERSION_LABEL: VERSION}
    service = TargetService(
        metadata=ObjectMeta(name=vc.name, labels=labels),
        spec=TargetServiceSpec(
            ports=[
                ServicePort(name="iscsi", port=ISCSI_PORT),
                ServicePort(name="api", port=GRPC_PORT),
                ServicePort(name="mgmt", port=MGMT_PORT),
                ServicePort(name="exporter", port=EXPORTER_PORT),
            ],
            selector={PERSISTENT_VOLUME_LABEL: vc.name, APP_LABEL: "strata-target"},
        ),
    )
    logger.info(f"Creating target service for volume {vc.name}")
    return store.create(service)


def get_or_create_volume(store: ObjectStore, service: TargetService, vc: VolumeConfig,
                         policy: VolumePolicySpec) -> Volume:
    """Target volume object with replication and consistency factors set."""
    try:
        return store.get(Volume, vc.name)
    except NotFoundError:
        pass

    rf = vc.spec.replica_count
    labels = {PERSISTENT_VOLUME_LABEL: vc.name, VERSION_LABEL: VERSION}
    source_volume, _ = vc.source_details
    if source_volume:
        labels[SOURCE_VOLUME_ANNOTATION] = source_volume

    ip = service.spec.cluster_ip
    volume = Volume(
        metadata=ObjectMeta(name=vc.name, labels=labels),
        spec=VolumeSpec(
            capacity=vc.spec.capacity,
            target_ip=ip,
            target_port=str(ISCSI_PORT),
            target_portal=f"{ip}:{ISCSI_PORT}" if ip else "",
            iqn=IQN_PREFIX + vc.name,
            replication_factor=rf,
            desired_replication_factor=rf,
            consistency_factor=consistency_factor(rf),
            queue_depth=policy.target.queue_depth,
            io_workers=policy.target.io_workers,
        ),
    )
    logger.info(f"Creating volume {vc.name} with replication factor {rf}")
    return store.create(volume)
