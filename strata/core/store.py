"""Declarative object store used by every controller.

Objects are kept as their JSON-serialized form so every read hands back an
independent copy, the way a remote API server would. Updates are guarded by
resource versions; deleting an object that still has finalizers only marks
it for deletion.
"""
import copy
import itertools
import json
import random
import string
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from strata.core.errors import AlreadyExistsError, ConflictError, NotFoundError
from strata.core.logger import get_logger
from strata.core.selectors import Selector, matches
from strata.models.meta import Resource, now_iso

logger = get_logger(__name__)

T = TypeVar("T", bound=Resource)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"

Key = Tuple[str, str, str]
Watcher = Callable[[str, str, str, str], None]


def create_merge_patch(original: Dict[str, Any], modified: Dict[str, Any]) -> Dict[str, Any]:
    """Two-way JSON merge patch turning original into modified."""
    patch: Dict[str, Any] = {}
    for key in original.keys() - modified.keys():
        patch[key] = None
    for key, value in modified.items():
        if key not in original:
            patch[key] = value
        elif isinstance(value, dict) and isinstance(original[key], dict):
            nested = create_merge_patch(original[key], value)
            if nested:
                patch[key] = nested
        elif value != original[key]:
            patch[key] = value
    return patch


def apply_merge_patch(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result


def object_patch(old: Resource, new: Resource) -> Dict[str, Any]:
    """Merge patch between two versions of the same object."""
    return create_merge_patch(old.model_dump(mode="json"), new.model_dump(mode="json"))


def _changed(old: Dict[str, Any], new: Dict[str, Any]) -> bool:
    """True when new differs from old in anything but the resource version."""
    def strip(data):
        return {**data, "metadata": {k: v for k, v in data["metadata"].items() if k != "resource_version"}}
    return strip(old) != strip(new)


def _random_suffix(length: int = 5) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


class ObjectStore:
    """Thread-safe in-memory object store."""

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace
        self._objects: Dict[Key, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._versions = itertools.count(1)
        self._watchers: List[Watcher] = []

    # Watching

    def subscribe(self, watcher: Watcher) -> None:
        """Call watcher(event, kind, namespace, name) after every mutation."""
        self._watchers.append(watcher)

    def _notify(self, event: str, key: Key) -> None:
        kind, namespace, name = key
        for watcher in list(self._watchers):
            watcher(event, kind, namespace, name)

    # Persistence hook

    def _commit(self) -> None:
        """Called with the lock held after every mutation."""

    # Helpers

    def _key(self, kind: str, name: str, namespace: Optional[str]) -> Key:
        return kind, namespace if namespace else self.namespace, name

    @staticmethod
    def _load(cls: Type[T], data: Dict[str, Any]) -> T:
        return cls.model_validate(data)

    # Operations

    def get(self, cls: Type[T], name: str, namespace: Optional[str] = None) -> T:
        key = self._key(cls.kind, name, namespace)
        with self._lock:
            data = self._objects.get(key)
            if data is None:
                raise NotFoundError(cls.kind, name)
            return self._load(cls, data)

    def list(self, cls: Type[T], selector: Selector = None,
             namespace: Optional[str] = None) -> List[T]:
        ns = namespace if namespace else self.namespace
        with self._lock:
            items = [
                self._load(cls, data)
                for (kind, obj_ns, _), data in sorted(self._objects.items())
                if kind == cls.kind and obj_ns == ns
                and matches(data["metadata"].get("labels"), selector)
            ]
        return items

    def create(self, obj: T) -> T:
        meta = obj.metadata
        with self._lock:
            name = meta.name
            if not name:
                if not meta.generate_name:
                    raise ValueError(f"{obj.kind} needs a name or generate_name")
                name = meta.generate_name + _random_suffix()
            key = self._key(obj.kind, name, meta.namespace)
            if key in self._objects:
                raise AlreadyExistsError(obj.kind, name)

            data = obj.model_dump(mode="json")
            data["metadata"].update(
                name=name,
                namespace=key[1],
                uid=str(uuid.uuid4()),
                resource_version=next(self._versions),
                creation_timestamp=now_iso(),
                deletion_timestamp=None,
            )
            self._objects[key] = data
            self._commit()
            created = self._load(type(obj), data)
        logger.debug(f"Created {obj.kind} {name}")
        self._notify(ADDED, key)
        return created

    def update(self, obj: T) -> T:
        key = self._key(obj.kind, obj.metadata.name, obj.metadata.namespace)
        with self._lock:
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(obj.kind, obj.metadata.name)
            if current["metadata"]["resource_version"] != obj.metadata.resource_version:
                raise ConflictError(
                    f"{obj.kind} '{obj.metadata.name}' was modified "
                    f"(have version {obj.metadata.resource_version}, "
                    f"stored {current['metadata']['resource_version']})"
                )
            data = obj.model_dump(mode="json")
            self._store_revision(key, current, data)
            event = self._finalize_or_keep(key, data)
            updated = self._load(type(obj), data)
        if event == DELETED or _changed(current, data):
            self._notify(event, key)
        return updated

    def patch(self, cls: Type[T], name: str, patch: Dict[str, Any],
              namespace: Optional[str] = None) -> T:
        """Apply a JSON merge patch without a resource version check."""
        key = self._key(cls.kind, name, namespace)
        with self._lock:
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(cls.kind, name)
            patch = {k: v for k, v in patch.items() if k != "metadata"} | {
                "metadata": {
                    k: v for k, v in (patch.get("metadata") or {}).items()
                    if k in ("labels", "annotations", "finalizers")
                }
            }
            data = apply_merge_patch(current, patch)
            data = cls.model_validate(data).model_dump(mode="json")
            self._store_revision(key, current, data)
            event = self._finalize_or_keep(key, data)
            patched = self._load(cls, data)
        if event == DELETED or _changed(current, data):
            self._notify(event, key)
        return patched

    def delete(self, cls: Type[T], name: str, namespace: Optional[str] = None) -> None:
        """Delete, or mark for deletion while finalizers remain."""
        key = self._key(cls.kind, name, namespace)
        with self._lock:
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(cls.kind, name)
            if current["metadata"]["finalizers"]:
                if current["metadata"]["deletion_timestamp"] is None:
                    current["metadata"]["deletion_timestamp"] = now_iso()
                    current["metadata"]["resource_version"] = next(self._versions)
                    self._commit()
                event = MODIFIED
            else:
                del self._objects[key]
                self._commit()
                event = DELETED
        logger.debug(f"Deleted {cls.kind} {name} ({event})")
        self._notify(event, key)

    def _store_revision(self, key: Key, current: Dict[str, Any], data: Dict[str, Any]) -> None:
        meta = data["metadata"]
        stored = current["metadata"]
        # Identity and deletion state are owned by the store.
        meta.update(
            name=stored["name"],
            namespace=stored["namespace"],
            uid=stored["uid"],
            creation_timestamp=stored["creation_timestamp"],
            deletion_timestamp=stored["deletion_timestamp"],
            resource_version=next(self._versions),
        )
        self._objects[key] = data

    def _finalize_or_keep(self, key: Key, data: Dict[str, Any]) -> str:
        meta = data["metadata"]
        if meta["deletion_timestamp"] is not None and not meta["finalizers"]:
            del self._objects[key]
            event = DELETED
        else:
            event = MODIFIED
        self._commit()
        return event


class JSONFileStore(ObjectStore):
    """Object store persisted to a JSON file, written atomically."""

    def __init__(self, path: Path, namespace: str = "default"):
        super().__init__(namespace)
        self.path = Path(path)
        self._load_file()

    def _load_file(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, "r") as f:
            state = json.load(f)
        for composite, data in state.get("objects", {}).items():
            kind, namespace, name = composite.split("/", 2)
            self._objects[(kind, namespace, name)] = data
        versions = [d["metadata"]["resource_version"] for d in self._objects.values()]
        self._versions = itertools.count(max(versions, default=0) + 1)
        logger.debug(f"Loaded {len(self._objects)} objects from {self.path}")

    def _commit(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        state = {
            "version": "1.0",
            "updated_at": now_iso(),
            "objects": {
                "/".join(key): data for key, data in sorted(self._objects.items())
            },
        }
        temp_file = self.path.with_suffix(".tmp")
        with open(temp_file, "w") as f:
            json.dump(state, f, indent=2)
        temp_file.rename(self.path)
