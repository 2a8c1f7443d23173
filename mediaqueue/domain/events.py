"""Domain events raised by the media conversion queue.

Events flow through the EventBus from the queue worker to any subscriber
(the media-queue bridge in particular). Item events carry the live queue
item owned by the queue; subscribers must not mutate it.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pydantic import BaseModel
from .models import MediaQueueItem, MediaQueueStatus


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class MediaQueueStatusChanged(Event):
    """Emitted when the queue as a whole changes status (idle/processing)."""

    queue_status: MediaQueueStatus


class MediaQueueItemEvent(Event):
    """Base class for events about a single queue item."""

    item: MediaQueueItem


class MediaQueueItemAdded(MediaQueueItemEvent):
    """Emitted when an item is enqueued with WAITING status."""

    queue_status: MediaQueueStatus = MediaQueueStatus.UNKNOWN


class MediaQueueItemStarted(MediaQueueItemEvent):
    """Emitted when the worker begins processing an item."""

    pass


class ActiveMediaQueueItemUpdated(MediaQueueItemEvent):
    """Emitted when the processing item changes (e.g. its new filename is known)."""

    pass


class MediaQueueItemStatusDetailAppended(MediaQueueItemEvent):
    """Emitted when text is appended to the processing item's status detail."""

    status_detail_appended: str


class MediaQueueItemCompleted(MediaQueueItemEvent):
    """Emitted when an item reaches a terminal status (complete, canceled or error)."""

    pass


class MediaQueueItemDeleted(MediaQueueItemEvent):
    """Emitted after an item is removed from the queue and the store."""

    pass


QUEUE_EVENT_TYPES = (
    MediaQueueStatusChanged,
    MediaQueueItemAdded,
    MediaQueueItemStarted,
    ActiveMediaQueueItemUpdated,
    MediaQueueItemStatusDetailAppended,
    MediaQueueItemCompleted,
    MediaQueueItemDeleted,
)
