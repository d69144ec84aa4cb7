"""Block device and claim models."""
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from strata.models.meta import Resource


class ClaimState(str, Enum):
    UNCLAIMED = "Unclaimed"
    CLAIMED = "Claimed"


class ClaimPhase(str, Enum):
    PENDING = "Pending"
    BOUND = "Bound"


class BlockDeviceSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    node_name: str
    path: str                                      # /dev/sdb
    dev_links: List[str] = Field(default_factory=list)   # /dev/disk/by-id/...
    capacity: int = 0


class BlockDeviceStatus(BaseModel):
    model_config = ConfigDict(extra='forbid')

    claim_state: ClaimState = ClaimState.UNCLAIMED
    claimed_by: str = ""


class BlockDevice(Resource):
    """A physical disk discovered on a node."""

    kind = "BlockDevice"

    spec: BlockDeviceSpec
    status: BlockDeviceStatus = Field(default_factory=BlockDeviceStatus)

    def device_paths(self) -> List[str]:
        """Paths the pool may know this disk by, stable links first."""
        return list(self.spec.dev_links) + [self.spec.path]


class BlockDeviceClaimSpec(BaseModel):
    model_config = ConfigDict(extra='forbid')

    block_device_name: str
    node_name: str = ""


class BlockDeviceClaimStatus(BaseModel):
    model_config = ConfigDict(extra='forbid')

    phase: ClaimPhase = ClaimPhase.PENDING


class BlockDeviceClaim(Resource):
    """Binds one block device to one pool cluster."""

    kind = "BlockDeviceClaim"

    spec: BlockDeviceClaimSpec
    status: BlockDeviceClaimStatus = Field(default_factory=BlockDeviceClaimStatus)

    @property
    def is_bound(self) -> bool:
        return self.status.phase == ClaimPhase.BOUND
