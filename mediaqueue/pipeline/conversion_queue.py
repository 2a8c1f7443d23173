"""Background media conversion queue.

Items are processed one at a time, oldest first, on a single worker thread.
Every state change is published on the EventBus (see `domain/events.py`);
status changes are published while holding the queue lock so subscribers
see them in the order they happened, item events are published outside it.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from mediaqueue.domain.events import (
    ActiveMediaQueueItemUpdated,
    MediaQueueItemAdded,
    MediaQueueItemCompleted,
    MediaQueueItemDeleted,
    MediaQueueItemStarted,
    MediaQueueItemStatusDetailAppended,
    MediaQueueStatusChanged,
)
from mediaqueue.domain.models import (
    MediaAssetRotateFlip,
    MediaObject,
    MediaQueueItem,
    MediaQueueItemConversionType,
    MediaQueueItemStatus,
    MediaQueueStatus,
    utc_now,
)
from mediaqueue.infrastructure.event_bus import EventBus
from mediaqueue.infrastructure.media_catalog import MediaCatalog, media_file_for
from mediaqueue.infrastructure.queue_store import QueueStore

if TYPE_CHECKING:
    from mediaqueue.infrastructure.ffmpeg import ConversionResult, FFmpegConverter

logger = logging.getLogger(__name__)


class MediaConversionQueue:
    """Owns the queue items, the worker thread and the queue status."""

    def __init__(
        self,
        bus: EventBus,
        store: QueueStore,
        catalog: MediaCatalog,
        converter: "FFmpegConverter",
        retention_days: int = 180,
        rotation_calculator: Optional[Callable[[MediaObject], MediaAssetRotateFlip]] = None,
        cancel_wait_timeout_s: float = 30.0,
    ):
        self.bus = bus
        self.store = store
        self.catalog = catalog
        self.converter = converter
        self.retention_days = retention_days
        self.rotation_calculator = rotation_calculator
        self.cancel_wait_timeout_s = cancel_wait_timeout_s

        self._lock = threading.RLock()
        self._current_changed = threading.Condition(self._lock)
        self._cancel_event = threading.Event()
        self._stopping = False
        self._worker: Optional[threading.Thread] = None
        self._current_id: Optional[int] = None
        self._status = MediaQueueStatus.UNKNOWN

        items = sorted(store.get_all(), key=lambda i: i.date_added)
        for item in items:
            # Left PROCESSING by a previous run that never finished it
            if item.status == MediaQueueItemStatus.PROCESSING:
                item.status = MediaQueueItemStatus.WAITING
                item.date_conversion_started = None
                store.upsert(item)
        self._items: Dict[int, MediaQueueItem] = {i.media_queue_id: i for i in items}

        self.status = MediaQueueStatus.IDLE

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> MediaQueueStatus:
        return self._status

    @status.setter
    def status(self, value: MediaQueueStatus):
        with self._lock:
            self._status = value
            self.bus.publish(MediaQueueStatusChanged(queue_status=value))

    @property
    def media_queue_items(self) -> List[MediaQueueItem]:
        """Snapshot of all items, in no particular order."""
        with self._lock:
            return list(self._items.values())

    def get(self, media_queue_id: int) -> Optional[MediaQueueItem]:
        with self._lock:
            return self._items.get(media_queue_id)

    def get_current_media_queue_item(self) -> Optional[MediaQueueItem]:
        with self._lock:
            if self._current_id is None:
                return None
            return self._items.get(self._current_id)

    def is_waiting_in_queue_or_processing(
        self,
        media_object_id: int,
        conversion_type: MediaQueueItemConversionType = MediaQueueItemConversionType.UNKNOWN,
    ) -> bool:
        def matches(item: MediaQueueItem) -> bool:
            return item.media_object_id == media_object_id and (
                conversion_type == MediaQueueItemConversionType.UNKNOWN
                or item.conversion_type == conversion_type
            )

        current = self.get_current_media_queue_item()
        if current is not None and matches(current):
            return True
        return any(
            matches(item) and item.status == MediaQueueItemStatus.WAITING
            for item in self.media_queue_items
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, media_object: MediaObject, conversion_type: MediaQueueItemConversionType) -> MediaQueueItem:
        """Enqueues a WAITING item for the media object. Call process() to start the worker."""
        rotation = MediaAssetRotateFlip.NOT_SPECIFIED
        if self.rotation_calculator is not None:
            rotation = self.rotation_calculator(media_object)

        item = MediaQueueItem(
            media_queue_id=0,
            media_object_id=media_object.id,
            status=MediaQueueItemStatus.WAITING,
            conversion_type=conversion_type,
            rotate_flip_amount=rotation,
            status_detail="",
            date_added=utc_now(),
        )
        self.store.upsert(item)
        with self._lock:
            self._items[item.media_queue_id] = item

        logger.info(f"Queued #{item.media_queue_id}: {media_object.original.file_name} ({conversion_type.name})")
        self.bus.publish(MediaQueueItemAdded(item=item, queue_status=self.status))
        return item

    def cancel_media_queue_item(self, media_queue_id: int) -> bool:
        """Cancels the item if it is the one processing and waits until the worker moves on.

        Waiting or finished items are left alone. Returns True if a cancel was issued.
        """
        with self._lock:
            if self._current_id != media_queue_id:
                return False
            logger.info(f"Canceling #{media_queue_id}")
            self._cancel_event.set()
            finished = self._current_changed.wait_for(
                lambda: self._current_id != media_queue_id, timeout=self.cancel_wait_timeout_s
            )
        if not finished:
            logger.warning(f"#{media_queue_id} still processing {self.cancel_wait_timeout_s:.0f}s after cancel")
        return True

    def remove_media_queue_item(self, media_queue_id: int) -> bool:
        """Deletes the item from the queue and the store, canceling it first if processing."""
        with self._lock:
            item = self._items.get(media_queue_id)
            if item is None:
                return False
            processing = self._current_id == media_queue_id
            if not processing:
                # Gone before the worker can pick it
                del self._items[media_queue_id]

        if processing:
            self.cancel_media_queue_item(media_queue_id)
            with self._lock:
                self._items.pop(media_queue_id, None)

        self.store.delete(media_queue_id)

        logger.info(f"Removed #{media_queue_id}")
        self.bus.publish(MediaQueueItemDeleted(item=item))
        return True

    def remove(self, media_object_id: int) -> int:
        """Removes every queue item belonging to the media object."""
        ids = [i.media_queue_id for i in self.media_queue_items if i.media_object_id == media_object_id]
        return sum(1 for media_queue_id in ids if self.remove_media_queue_item(media_queue_id))

    def remove_orphaned_items(self) -> int:
        """Removes items whose media object is no longer in the catalog."""
        media_object_ids = {i.media_object_id for i in self.media_queue_items if i.media_object_id not in self.catalog}
        removed = sum(self.remove(media_object_id) for media_object_id in sorted(media_object_ids))
        if removed:
            logger.info(f"Removed {removed} queue items whose media object no longer exists")
        return removed

    def delete_old_queue_items(self, now: Optional[datetime] = None) -> int:
        """Removes items added more than ``retention_days`` ago."""
        cutoff = (now or utc_now()) - timedelta(days=self.retention_days)
        ids = [i.media_queue_id for i in self.media_queue_items if i.date_added < cutoff]
        removed = sum(1 for media_queue_id in ids if self.remove_media_queue_item(media_queue_id))
        if removed:
            logger.info(f"Purged {removed} queue items added before {cutoff:%Y-%m-%d}")
        return removed

    def append_status_detail(self, item: MediaQueueItem, text: str):
        with self._lock:
            item.status_detail = f"{item.status_detail}\n{text}" if item.status_detail else text
        self.bus.publish(MediaQueueItemStatusDetailAppended(item=item, status_detail_appended=text))

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def process(self) -> bool:
        """Starts the worker if it is not already running. Returns True if started."""
        with self._lock:
            if self._worker is not None or self._stopping:
                return False
            if not self.converter.is_available():
                logger.warning("FFmpeg not found; media queue will not be processed")
                return False
            self._worker = threading.Thread(target=self._run_worker, name="mediaqueue-worker", daemon=True)
            self.status = MediaQueueStatus.PROCESSING
            self._worker.start()
        return True

    def shutdown(self, timeout: float = 10.0):
        """Cancels the current item and stops the worker before it takes another."""
        with self._lock:
            self._stopping = True
            worker = self._worker
            if self._current_id is not None:
                self._cancel_event.set()
        if worker is not None:
            worker.join(timeout=timeout)

    def _next_waiting_item(self) -> Optional[MediaQueueItem]:
        waiting = [i for i in self._items.values() if i.status == MediaQueueItemStatus.WAITING]
        return min(waiting, key=lambda i: i.date_added, default=None)

    def _run_worker(self):
        try:
            while True:
                with self._lock:
                    item = None if self._stopping else self._next_waiting_item()
                    if item is None:
                        # Worked through the queue
                        self._worker = None
                        self.status = MediaQueueStatus.IDLE
                        return
                    self._current_id = item.media_queue_id
                    self._cancel_event.clear()
                    self._current_changed.notify_all()

                self._process_item(item)

                with self._lock:
                    self._current_id = None
                    self._current_changed.notify_all()
        except Exception:
            logger.exception("Media queue worker stopped unexpectedly")
            with self._lock:
                self._worker = None
                self._current_id = None
                self._current_changed.notify_all()
                self.status = MediaQueueStatus.IDLE

    def _process_item(self, item: MediaQueueItem):
        try:
            if not self._begin_process_item(item):
                return
            media_object = self.catalog.get(item.media_object_id)
            result = self.converter.convert(
                item,
                media_object,
                self._cancel_event,
                on_output=lambda text: self.append_status_detail(item, text),
                on_new_filename=lambda name: self._set_new_filename(item, name),
            )
            self._apply_conversion_result(item, media_object, result)
            self._complete_process_item(item, result)
        except Exception as exc:
            logger.exception(f"Error processing queue item #{item.media_queue_id}")
            if item.status == MediaQueueItemStatus.PROCESSING:
                self.append_status_detail(item, f"ERROR: {exc}")
                self._complete_process_item(item, None)

    def _begin_process_item(self, item: MediaQueueItem) -> bool:
        with self._lock:
            if item.status != MediaQueueItemStatus.WAITING or not self._is_queued(item):
                return False
            item.status = MediaQueueItemStatus.PROCESSING
            item.date_conversion_started = utc_now()

        logger.info(f"Processing #{item.media_queue_id} ({item.conversion_type.name})")
        self.bus.publish(MediaQueueItemStarted(item=item))
        self.store.upsert(item)
        return True

    def _set_new_filename(self, item: MediaQueueItem, new_filename: str):
        with self._lock:
            item.new_filename = new_filename
        self.bus.publish(ActiveMediaQueueItemUpdated(item=item))

    def _apply_conversion_result(self, item: MediaQueueItem, media_object: MediaObject,
                                 result: "ConversionResult"):
        if item.conversion_type != MediaQueueItemConversionType.CREATE_OPTIMIZED:
            return
        if not result.file_created or result.destination is None:
            return
        previous = media_object.optimized
        media_object.optimized = media_file_for(result.destination)
        if (previous is not None and previous.path != result.destination
                and previous.path != media_object.original.path and previous.path.exists()):
            previous.path.unlink()
        self.append_status_detail(item, f"FFmpeg created file '{result.destination.name}'.")

    def _complete_process_item(self, item: MediaQueueItem, result: Optional["ConversionResult"]):
        source_name = self._source_name(item)
        if result is not None and result.file_created:
            status = MediaQueueItemStatus.COMPLETE
        elif (result is not None and result.canceled) or self._cancel_event.is_set():
            status = MediaQueueItemStatus.CANCELED
            self.append_status_detail(item, f"Administrator canceled the processing of '{source_name}'.")
        else:
            status = MediaQueueItemStatus.ERROR
            self.append_status_detail(item, f"Unable to process file '{source_name}'.")

        with self._lock:
            item.date_conversion_completed = utc_now()
            item.status = status
            removed = not self._is_queued(item)
        if removed:
            logger.info(f"#{item.media_queue_id} was removed while processing; dropping its {status.name} result")
            return

        self.store.upsert(item)
        logger.info(f"Finished #{item.media_queue_id}: {status.name}")
        self.bus.publish(MediaQueueItemCompleted(item=item))

    def _is_queued(self, item: MediaQueueItem) -> bool:
        return self._items.get(item.media_queue_id) is item

    def _source_name(self, item: MediaQueueItem) -> str:
        try:
            return self.catalog.get(item.media_object_id).original.file_name
        except Exception:
            return "<Unknown>"
