"""User-visible events recorded against stored objects."""
import json
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Deque, List, Optional

from strata.core.logger import get_logger
from strata.models.meta import Resource, now_iso

logger = get_logger(__name__)

NORMAL = "Normal"
WARNING = "Warning"


@dataclass
class Event:
    kind: str
    name: str
    type: str
    reason: str
    message: str
    timestamp: str = field(default_factory=now_iso)


class EventRecorder:
    """Logs events and keeps the most recent ones in memory."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[Event] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def event(self, obj: Resource, event_type: str, reason: str, message: str) -> Event:
        recorded = Event(obj.kind, obj.name, event_type, reason, message)
        with self._lock:
            self._events.append(recorded)

        text = f"{obj.kind}/{obj.name} {reason}: {message}"
        if event_type == WARNING:
            logger.warning(text)
        else:
            logger.info(text)
        return recorded

    def normal(self, obj: Resource, reason: str, message: str) -> Event:
        return self.event(obj, NORMAL, reason, message)

    def warning(self, obj: Resource, reason: str, message: str) -> Event:
        return self.event(obj, WARNING, reason, message)

    def events(self, kind: Optional[str] = None, name: Optional[str] = None) -> List[Event]:
        with self._lock:
            return [
                e for e in self._events
                if (kind is None or e.kind == kind) and (name is None or e.name == name)
            ]

    def reasons(self, kind: Optional[str] = None, name: Optional[str] = None) -> List[str]:
        return [e.reason for e in self.events(kind, name)]


class JournalEventRecorder(EventRecorder):
    """Event recorder that also appends every event to a JSON-lines journal.

    The journal lets `strata events` show what controllers running in another
    process recorded.
    """

    def __init__(self, path: Path, max_events: int = 1000):
        super().__init__(max_events)
        self.path = Path(path)

    def event(self, obj: Resource, event_type: str, reason: str, message: str) -> Event:
        recorded = super().event(obj, event_type, reason, message)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(asdict(recorded)) + "\n")
        return recorded


def read_journal(path: Path, kind: Optional[str] = None, name: Optional[str] = None) -> List[Event]:
    """Events from a journal file, oldest first."""
    path = Path(path)
    if not path.exists():
        return []
    events = []
    with open(path) as f:
        for line in f:
            if not line.strip():
                continue
            event = Event(**json.loads(line))
            if (kind is None or event.kind == kind) and (name is None or event.name == name):
                events.append(event)
    return events
