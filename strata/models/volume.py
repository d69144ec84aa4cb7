"""Volume config, policy, target volume and replica models."""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from strata.models.meta import Condition, Resource
from strata.models.pool import Resources, Toleration


class VolumeConfigPhase(str, Enum):
    PENDING = "Pending"
    BOUND = "Bound"


class ReplicaPhase(str, Enum):
    EMPTY = ""
    INIT = "Init"
    RECREATE = "Recreate"
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    OFFLINE = "Offline"
    ERROR = "Error"


class ResizeConditionType(str, Enum):
    RESIZING = "Resizing"
    RESIZE_PENDING = "FileSystemResizePending"


class ReplicaPoolInfo(BaseModel):
    model_config = ConfigDict(extra='forbid')

    pool_name: str


class ProvisionPolicy(BaseModel):
    model_config = ConfigDict(extra='forbid')

    replica_affinity: bool = False


class TargetPolicy(BaseModel):
    """Tunables for the data-path target process."""

    model_config = ConfigDict(extra='forbid')

    queue_depth: str = ""
    io_workers: int = 0
    resources: Optional[Resources] = None
    aux_resources: Optional[Resources] = None
    priority_class_name: str = ""
    tolerations: List[Toleration] = Field(default_factory=list)
    node_selector: Dict[str, str] = Field(default_factory=dict)


class ReplicaPolicy(BaseModel):
    model_config = ConfigDict(extra='forbid')

    zvol_workers: str = ""
    compression: str = ""


class VolumePolicySpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    provision: ProvisionPolicy = Field(default_factory=ProvisionPolicy)
    target: TargetPolicy = Field(default_factory=TargetPolicy)
    replica: ReplicaPolicy = Field(default_factory=ReplicaPolicy)
    replica_pool_info: List[ReplicaPoolInfo] = Field(default_factory=list)

    def pool_names(self) -> List[str]:
        return [info.pool_name for info in self.replica_pool_info]


class VolumePolicy(Resource):
    """Named policy referenced from a volume config by annotation."""

    kind = "VolumePolicy"

    spec: VolumePolicySpec = Field(default_factory=VolumePolicySpec)


class VolumeConfigSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    capacity: int = Field(gt=0)
    replica_count: int = Field(gt=0)
    source_volume: str = ""            # "<volume>@<snapshot>" for clones
    publish_node_id: str = ""
    volume_ref: str = ""
    policy: VolumePolicySpec = Field(default_factory=VolumePolicySpec)

    @field_validator('source_volume')
    @classmethod
    def validate_source(cls, v):
        if v and (v.count("@") != 1 or v.startswith("@") or v.endswith("@")):
            raise ValueError(f"source_volume must look like <volume>@<snapshot>, got '{v}'")
        return v

    def desired_pool_names(self) -> List[str]:
        return self.policy.pool_names()


class VolumeConfigStatus(BaseModel):
    model_config = ConfigDict(extra='forbid')

    phase: VolumeConfigPhase = VolumeConfigPhase.PENDING
    pool_info: List[str] = Field(default_factory=list)
    capacity: int = 0
    conditions: List[Condition] = Field(default_factory=list)


class VolumeConfig(Resource):
    """Desired state of one replicated volume."""

    kind = "VolumeConfig"

    spec: VolumeConfigSpec
    status: VolumeConfigStatus = Field(default_factory=VolumeConfigStatus)

    @property
    def source_details(self):
        """(source volume, snapshot) of a clone, or ("", "")."""
        if not self.spec.source_volume:
            return "", ""
        volume, snapshot = self.spec.source_volume.split("@", 1)
        return volume, snapshot


class VolumeSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    capacity: int = 0
    target_ip: str = ""
    target_port: str = "3260"
    target_portal: str = ""
    iqn: str = ""
    replication_factor: int = 0
    consistency_factor: int = 0
    desired_replication_factor: int = 0
    queue_depth: str = ""
    io_workers: int = 0
    known_replicas: Dict[str, str] = Field(default_factory=dict)


class VolumeStatus(BaseModel):
    """Observed target state; written by the data path."""

    model_config = ConfigDict(extra='forbid')

    phase: str = "Init"
    capacity: int = 0
    known_replicas: Dict[str, str] = Field(default_factory=dict)


class Volume(Resource):
    """Realized target of a volume config."""

    kind = "Volume"

    spec: VolumeSpec = Field(default_factory=VolumeSpec)
    status: VolumeStatus = Field(default_factory=VolumeStatus)

    def is_scale_down_in_progress(self) -> bool:
        """True while the data path still reports more replicas than desired."""
        return len(self.status.known_replicas) > self.spec.desired_replication_factor

    def is_resize_in_progress(self) -> bool:
        return self.spec.capacity > self.status.capacity


class VolumeReplicaSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    target_ip: str = ""
    replica_id: str = ""
    capacity: int = 0
    zvol_workers: str = ""


class VolumeReplicaStatus(BaseModel):
    model_config = ConfigDict(extra='forbid')

    phase: ReplicaPhase = ReplicaPhase.EMPTY


class VolumeReplica(Resource):
    """One copy of a volume on one pool."""

    kind = "VolumeReplica"

    spec: VolumeReplicaSpec = Field(default_factory=VolumeReplicaSpec)
    status: VolumeReplicaStatus = Field(default_factory=VolumeReplicaStatus)


class ServicePort(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: str
    port: int


class TargetServiceSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    cluster_ip: str = ""
    ports: List[ServicePort] = Field(default_factory=list)
    selector: Dict[str, str] = Field(default_factory=dict)


class TargetService(Resource):
    """Service fronting the target process of one volume."""

    kind = "TargetService"

    spec: TargetServiceSpec = Field(default_factory=TargetServiceSpec)
