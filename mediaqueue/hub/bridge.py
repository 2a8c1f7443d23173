"""Bridge between the media conversion queue and connected clients.

A single instance per process subscribes to every queue event on the
EventBus and re-broadcasts it to push clients as a named message. It also
answers the pull queries clients make when they first load, or after they
reconnect.

Push and pull are independent: a client that reads the waiting list while
an item is being added may see the item in the list and then receive the
``mediaQueueItemAdded`` message for it as well. Clients key items by
``MediaQueueId`` to cope with that.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional

from mediaqueue.domain.dto import MediaQueueItemWebEntity, MediaQueueWebEntity
from mediaqueue.domain.events import (
    ActiveMediaQueueItemUpdated,
    MediaQueueItemAdded,
    MediaQueueItemCompleted,
    MediaQueueItemDeleted,
    MediaQueueItemStarted,
    MediaQueueItemStatusDetailAppended,
    MediaQueueStatusChanged,
)
from mediaqueue.domain.models import INCOMPLETE_STATUSES, MediaQueueItemStatus
from mediaqueue.exceptions import BridgeNotInitializedError
from mediaqueue.hub.clients import HubClients
from mediaqueue.hub.mapper import MediaQueueItemMapper, to_media_queue_web_entity
from mediaqueue.infrastructure.event_bus import EventBus
from mediaqueue.pipeline.conversion_queue import MediaConversionQueue

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class MediaQueueBridge:
    def __init__(self, bus: EventBus, queue: MediaConversionQueue, clients: HubClients,
                 mapper: MediaQueueItemMapper):
        self.queue = queue
        self.clients = clients
        self.mapper = mapper

        bus.subscribe(MediaQueueStatusChanged, self.on_media_queue_status_changed)
        bus.subscribe(MediaQueueItemAdded, self.on_media_queue_item_added)
        bus.subscribe(MediaQueueItemStarted, self.on_media_queue_item_started)
        bus.subscribe(ActiveMediaQueueItemUpdated, self.on_active_media_queue_item_updated)
        bus.subscribe(MediaQueueItemStatusDetailAppended, self.on_media_queue_item_status_detail_appended)
        bus.subscribe(MediaQueueItemCompleted, self.on_media_queue_item_completed)
        bus.subscribe(MediaQueueItemDeleted, self.on_media_queue_item_deleted)

    # ------------------------------------------------------------------
    # Pull queries
    # ------------------------------------------------------------------

    def get_media_queue(self) -> MediaQueueWebEntity:
        try:
            return to_media_queue_web_entity(self.queue.status)
        except Exception:
            logger.exception("Could not read the media queue status")
            raise

    def get_current_media_queue_item(self) -> Optional[MediaQueueItemWebEntity]:
        """The item being processed, or None when the queue is idle."""
        try:
            return self.mapper.to_web_entity(self.queue.get_current_media_queue_item())
        except Exception:
            logger.exception("Could not read the current media queue item")
            raise

    def get_waiting_media_queue_items(self) -> List[MediaQueueItemWebEntity]:
        """WAITING items, oldest first (the order they will be processed in)."""
        try:
            items = [i for i in self.queue.media_queue_items if i.status == MediaQueueItemStatus.WAITING]
            items.sort(key=lambda i: i.date_added)
            return [self.mapper.to_web_entity(i) for i in items]
        except Exception:
            logger.exception("Could not read the waiting media queue items")
            raise

    def get_complete_media_queue_items(self) -> List[MediaQueueItemWebEntity]:
        """Finished items (complete, canceled or failed), most recently finished first."""
        try:
            items = [i for i in self.queue.media_queue_items if i.status not in INCOMPLETE_STATUSES]
            items.sort(key=lambda i: i.date_conversion_completed or _OLDEST, reverse=True)
            return [self.mapper.to_web_entity(i) for i in items]
        except Exception:
            logger.exception("Could not read the completed media queue items")
            raise

    # ------------------------------------------------------------------
    # Push handlers
    # ------------------------------------------------------------------
    # These run on the thread that raised the event, usually the queue
    # worker. Errors stop here.

    def on_media_queue_status_changed(self, event: MediaQueueStatusChanged):
        try:
            self.clients.broadcast("mediaQueueStatusChanged", to_media_queue_web_entity(event.queue_status))
        except Exception:
            logger.exception("Error broadcasting media queue status change")

    def on_media_queue_item_added(self, event: MediaQueueItemAdded):
        try:
            self.clients.broadcast("mediaQueueItemAdded", self.mapper.to_web_entity(event.item))
        except Exception:
            logger.exception(f"Error broadcasting added media queue item #{event.item.media_queue_id}")

    def on_media_queue_item_started(self, event: MediaQueueItemStarted):
        try:
            self.clients.broadcast("mediaQueueItemStarted", self.mapper.to_web_entity(event.item))
        except Exception:
            logger.exception(f"Error broadcasting started media queue item #{event.item.media_queue_id}")

    def on_active_media_queue_item_updated(self, event: ActiveMediaQueueItemUpdated):
        try:
            self.clients.broadcast("activeMediaQueueItemUpdated", self.mapper.to_web_entity(event.item))
        except Exception:
            logger.exception(f"Error broadcasting updated media queue item #{event.item.media_queue_id}")

    def on_media_queue_item_status_detail_appended(self, event: MediaQueueItemStatusDetailAppended):
        try:
            self.clients.broadcast("addToMediaQueueItemStatusDetail", event.status_detail_appended)
        except Exception:
            logger.exception(f"Error broadcasting status detail of media queue item #{event.item.media_queue_id}")

    def on_media_queue_item_completed(self, event: MediaQueueItemCompleted):
        try:
            self.clients.broadcast("mediaQueueItemCompleted", self.mapper.to_web_entity(event.item))
        except Exception:
            logger.exception(f"Error broadcasting completed media queue item #{event.item.media_queue_id}")

    def on_media_queue_item_deleted(self, event: MediaQueueItemDeleted):
        try:
            self.clients.broadcast("mediaQueueItemDeleted", event.item.media_queue_id)
        except Exception:
            logger.exception(f"Error broadcasting deleted media queue item #{event.item.media_queue_id}")


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

_bridge: Optional[MediaQueueBridge] = None
_bridge_lock = threading.Lock()


def initialize_bridge(bus: EventBus, queue: MediaConversionQueue, clients: HubClients,
                      mapper: MediaQueueItemMapper) -> MediaQueueBridge:
    """Creates the bridge on first call; later calls return the same instance."""
    global _bridge
    with _bridge_lock:
        if _bridge is None:
            _bridge = MediaQueueBridge(bus, queue, clients, mapper)
            logger.info("Media queue bridge initialized")
        return _bridge


def get_bridge() -> MediaQueueBridge:
    bridge = _bridge
    if bridge is None:
        raise BridgeNotInitializedError("The media queue bridge has not been initialized")
    return bridge


def reset_bridge():
    """Forgets the process instance. Tests only; its subscriptions stay on the old bus."""
    global _bridge
    with _bridge_lock:
        _bridge = None
