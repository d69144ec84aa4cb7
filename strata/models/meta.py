"""Object metadata and status conditions shared by every stored kind."""
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ObjectMeta(BaseModel):
    """Identity and bookkeeping for a stored object."""

    model_config = ConfigDict(extra='forbid')

    name: str = ""
    generate_name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: int = 0
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    finalizers: List[str] = Field(default_factory=list)
    creation_timestamp: Optional[str] = None
    deletion_timestamp: Optional[str] = None


class Resource(BaseModel):
    """Base for every kind kept in the object store."""

    model_config = ConfigDict(extra='forbid')

    kind: ClassVar[str] = ""

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.annotations

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add finalizer; returns True when the object changed."""
        if finalizer in self.metadata.finalizers:
            return False
        self.metadata.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove finalizer; returns True when the object changed."""
        if finalizer not in self.metadata.finalizers:
            return False
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != finalizer]
        return True


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    """A typed status condition with transition bookkeeping."""

    model_config = ConfigDict(extra='forbid')

    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[str] = None
    last_update_time: Optional[str] = None


def get_condition(conditions: List[Condition], condition_type: str) -> Optional[Condition]:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(conditions: List[Condition], new: Condition) -> List[Condition]:
    """Insert or replace the condition of new.type.

    The transition time only moves when the status actually changes.
    """
    now = now_iso()
    new.last_update_time = now
    existing = get_condition(conditions, new.type)
    if existing is not None and existing.status == new.status:
        new.last_transition_time = existing.last_transition_time or now
    else:
        new.last_transition_time = now
    return [c for c in conditions if c.type != new.type] + [new]


def remove_condition(conditions: List[Condition], condition_type: str) -> List[Condition]:
    return [c for c in conditions if c.type != condition_type]
