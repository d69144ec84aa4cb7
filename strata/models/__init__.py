"""Data models for Strata."""
from strata.models.budget import DisruptionBudget, LabelSelector, SelectorRequirement
from strata.models.disk import BlockDevice, BlockDeviceClaim, ClaimPhase, ClaimState
from strata.models.meta import Condition, ConditionStatus, ObjectMeta, Resource
from strata.models.node import Node
from strata.models.pool import (
    BlockDeviceRef,
    PoolCluster,
    PoolConfig,
    PoolInstance,
    PoolPhase,
    PoolSpec,
    RaidGroup,
    RaidType,
)
from strata.models.volume import (
    ReplicaPhase,
    TargetService,
    Volume,
    VolumeConfig,
    VolumeConfigPhase,
    VolumePolicy,
    VolumeReplica,
)

KINDS = {
    cls.kind: cls
    for cls in (
        BlockDevice,
        BlockDeviceClaim,
        DisruptionBudget,
        Node,
        PoolCluster,
        PoolInstance,
        TargetService,
        Volume,
        VolumeConfig,
        VolumePolicy,
        VolumeReplica,
    )
}

__all__ = [
    'KINDS',
    'BlockDevice',
    'BlockDeviceClaim',
    'BlockDeviceRef',
    'ClaimPhase',
    'ClaimState',
    'Condition',
    'ConditionStatus',
    'DisruptionBudget',
    'LabelSelector',
    'Node',
    'ObjectMeta',
    'PoolCluster',
    'PoolConfig',
    'PoolInstance',
    'PoolPhase',
    'PoolSpec',
    'RaidGroup',
    'RaidType',
    'ReplicaPhase',
    'Resource',
    'SelectorRequirement',
    'TargetService',
    'Volume',
    'VolumeConfig',
    'VolumeConfigPhase',
    'VolumePolicy',
    'VolumeReplica',
]
