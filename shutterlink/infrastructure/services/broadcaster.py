"""Real-time event fan-out to connected principals."""
import logging
import queue
import threading
from datetime import datetime, timezone
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

# Event types
COLLECTION_SHARED = "collection.shared"
PHOTOS_SHARED = "photos.shared"
PHOTO_UPLOADED = "photo.uploaded"
GUEST_SHARED = "guest.shared"
ENTITY_MARKED = "entity.marked_for_deletion"
ENTITY_RESTORED = "entity.restored"
SWEEP_COMPLETED = "sweep.completed"


class EventBroadcaster(Protocol):
    def emit(self, event_type: str, payload: dict, targets: Iterable[str] = ()) -> None: ...


class NullBroadcaster:
    """Drops every event."""

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def emit(self, event_type: str, payload: dict, targets: Iterable[str] = ()) -> None:
        pass


class InMemoryBroadcaster:
    """Per-principal subscriber queues, fed while the broadcaster is running.

    Examples:
        >>> broadcaster = InMemoryBroadcaster()
        >>> broadcaster.start()
        >>> inbox = broadcaster.subscribe(client_id)
        >>> broadcaster.emit("collection.shared", {"collection_id": cid}, [client_id])
        >>> inbox.get_nowait()["type"]
        'collection.shared'
    """

    def __init__(self, max_queue: int = 100):
        self._max_queue = max_queue
        self._subscribers: dict[str, list[queue.Queue]] = {}
        self._lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        """Stop delivering and drop every subscription."""
        with self._lock:
            self._running = False
            self._subscribers.clear()

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, principal_id: str) -> queue.Queue:
        inbox: queue.Queue = queue.Queue(maxsize=self._max_queue)
        with self._lock:
            self._subscribers.setdefault(principal_id, []).append(inbox)
        return inbox

    def unsubscribe(self, principal_id: str, inbox: queue.Queue) -> None:
        with self._lock:
            inboxes = self._subscribers.get(principal_id, [])
            if inbox in inboxes:
                inboxes.remove(inbox)
            if not inboxes:
                self._subscribers.pop(principal_id, None)

    def emit(self, event_type: str, payload: dict, targets: Iterable[str] = ()) -> None:
        if not self._running:
            logger.debug("Broadcaster stopped, dropping %s", event_type)
            return

        event = {
            "type": event_type,
            "payload": payload,
            "emitted_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            inboxes = [inbox for target in targets for inbox in self._subscribers.get(target, [])]
        for inbox in inboxes:
            try:
                inbox.put_nowait(event)
            except queue.Full:
                logger.warning("Subscriber queue full, dropping %s", event_type)
