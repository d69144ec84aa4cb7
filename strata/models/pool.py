"""Pool cluster and pool instance models."""
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from strata.models.meta import Condition, Resource

SUPPORTED_COMPRESSION = {
    "on", "off", "lz4", "gle", "lzjb", "gzip",
    *(f"gzip-{level}" for level in range(1, 10)),
}

DEFAULT_COMPRESSION = "lz4"
DEFAULT_RO_THRESHOLD = 85


class RaidType(str, Enum):
    """Redundancy layout of a raid group."""
    STRIPE = "stripe"
    MIRROR = "mirror"
    RAIDZ = "raidz"
    RAIDZ2 = "raidz2"

    @property
    def vdev_keyword(self) -> str:
        """Keyword passed to zpool; stripes take none."""
        return "" if self is RaidType.STRIPE else self.value


class ConditionType(str, Enum):
    DISK_REPLACEMENT = "DiskReplacement"
    POOL_EXPANSION = "PoolExpansion"
    DISK_UNAVAILABLE = "DiskUnavailable"
    POOL_LOST = "PoolLost"


class PoolPhase(str, Enum):
    """Pool phase; the health values mirror `zpool get health` output."""
    EMPTY = ""
    PENDING = "Pending"
    ONLINE = "ONLINE"
    DEGRADED = "DEGRADED"
    FAULTED = "FAULTED"
    OFFLINE = "OFFLINE"
    REMOVED = "REMOVED"
    UNAVAIL = "UNAVAIL"
    ERROR = "Error"

    @classmethod
    def from_health(cls, health: str) -> "PoolPhase":
        try:
            return cls(health.strip().upper())
        except ValueError:
            return cls.ERROR


class BlockDeviceRef(BaseModel):
    """A block device in a raid group and the link the pool uses for it."""

    model_config = ConfigDict(extra='forbid')

    block_device_name: str
    dev_link: str = ""
    capacity: int = 0


class RaidGroup(BaseModel):
    model_config = ConfigDict(extra='forbid')

    block_devices: List[BlockDeviceRef] = Field(min_length=1)

    def device_names(self) -> List[str]:
        return [bd.block_device_name for bd in self.block_devices]


class Resources(BaseModel):
    model_config = ConfigDict(extra='forbid')

    requests: Dict[str, str] = Field(default_factory=dict)
    limits: Dict[str, str] = Field(default_factory=dict)


class Toleration(BaseModel):
    model_config = ConfigDict(extra='forbid')

    key: str = ""
    operator: str = "Equal"
    value: str = ""
    effect: str = ""


class PoolConfig(BaseModel):
    """Tunables of one pool."""

    model_config = ConfigDict(extra='forbid')

    data_raid_group_type: RaidType = RaidType.STRIPE
    write_cache_group_type: Optional[RaidType] = None
    compression: str = DEFAULT_COMPRESSION
    resources: Optional[Resources] = None
    aux_resources: Optional[Resources] = None
    priority_class_name: str = ""
    tolerations: List[Toleration] = Field(default_factory=list)
    ro_threshold_limit: Optional[int] = None

    @field_validator('compression')
    @classmethod
    def validate_compression(cls, v):
        """Only compression algorithms zfs accepts for pool datasets."""
        if v not in SUPPORTED_COMPRESSION:
            raise ValueError(
                f"Unsupported compression '{v}'. Supported: {', '.join(sorted(SUPPORTED_COMPRESSION))}"
            )
        return v

    @field_validator('ro_threshold_limit')
    @classmethod
    def validate_threshold(cls, v):
        if v is not None and not 0 <= v <= 100:
            raise ValueError(f"ro_threshold_limit must be between 0 and 100, got {v}")
        return v

    @property
    def write_cache_type(self) -> RaidType:
        return self.write_cache_group_type or self.data_raid_group_type


class PoolSpec(BaseModel):
    """Desired pool on exactly one node."""

    model_config = ConfigDict(extra='forbid')

    node_selector: Dict[str, str] = Field(min_length=1)
    data_raid_groups: List[RaidGroup] = Field(min_length=1)
    write_cache_raid_groups: List[RaidGroup] = Field(default_factory=list)
    pool_config: PoolConfig = Field(default_factory=PoolConfig)

    def block_device_names(self) -> List[str]:
        names = []
        for group in self.data_raid_groups + self.write_cache_raid_groups:
            names.extend(group.device_names())
        return names


class PoolClusterSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    pools: List[PoolSpec] = Field(default_factory=list)
    resources: Optional[Resources] = None
    aux_resources: Optional[Resources] = None
    priority_class_name: str = ""
    tolerations: List[Toleration] = Field(default_factory=list)


class PoolClusterStatus(BaseModel):
    model_config = ConfigDict(extra='forbid')

    provisioned_instances: int = 0
    desired_instances: int = 0
    healthy_instances: int = 0


class PoolCluster(Resource):
    """Declarative description of every pool in a storage cluster."""

    kind = "PoolCluster"

    spec: PoolClusterSpec = Field(default_factory=PoolClusterSpec)
    status: PoolClusterStatus = Field(default_factory=PoolClusterStatus)


class PoolCapacity(BaseModel):
    model_config = ConfigDict(extra='forbid')

    used: int = 0
    free: int = 0
    total: int = 0
    logical_used: int = 0

    @property
    def used_percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.used * 100.0 / self.total


class PoolInstanceSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    host_name: str
    pool_config: PoolConfig = Field(default_factory=PoolConfig)
    data_raid_groups: List[RaidGroup] = Field(min_length=1)
    write_cache_raid_groups: List[RaidGroup] = Field(default_factory=list)


class PoolInstanceStatus(BaseModel):
    model_config = ConfigDict(extra='forbid')

    phase: PoolPhase = PoolPhase.EMPTY
    conditions: List[Condition] = Field(default_factory=list)
    capacity: PoolCapacity = Field(default_factory=PoolCapacity)
    read_only: bool = False


class PoolInstance(Resource):
    """The pool realized on one node."""

    kind = "PoolInstance"

    spec: PoolInstanceSpec
    status: PoolInstanceStatus = Field(default_factory=PoolInstanceStatus)

    def raid_groups(self) -> Iterator[Tuple[RaidGroup, bool]]:
        """Yield (group, is_write_cache) for data groups, then write-cache groups."""
        for group in self.spec.data_raid_groups:
            yield group, False
        for group in self.spec.write_cache_raid_groups:
            yield group, True

    def group_type(self, is_write_cache: bool) -> RaidType:
        config = self.spec.pool_config
        return config.write_cache_type if is_write_cache else config.data_raid_group_type

    def block_device_names(self) -> List[str]:
        return [name for group, _ in self.raid_groups() for name in group.device_names()]

    @property
    def ro_threshold(self) -> int:
        limit = self.spec.pool_config.ro_threshold_limit
        return DEFAULT_RO_THRESHOLD if limit is None else limit
