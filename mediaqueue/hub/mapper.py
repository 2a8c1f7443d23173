"""Maps queue items and queue status to their client-facing DTOs."""
from datetime import datetime
from typing import Optional

from mediaqueue.domain.dto import MediaQueueItemWebEntity, MediaQueueWebEntity
from mediaqueue.domain.models import MediaQueueItem, MediaQueueStatus, pascal_name, utc_now
from mediaqueue.hub.urls import DisplayObjectType, MediaUrlBuilder, strip_host
from mediaqueue.infrastructure.media_catalog import MediaCatalog


def get_duration_ms(item: MediaQueueItem, now: Optional[datetime] = None) -> float:
    """Processing time of the item in milliseconds.

    0 before it starts, elapsed time so far while it runs, and the fixed
    start-to-completion span once it is done. Running items are measured
    against ``now`` (UTC, read at call time when omitted).
    """
    started = item.date_conversion_started
    if started is None:
        return 0.0
    end = item.date_conversion_completed
    if end is None:
        end = now or utc_now()
    return (end - started).total_seconds() * 1000.0


def to_media_queue_web_entity(status: MediaQueueStatus) -> MediaQueueWebEntity:
    return MediaQueueWebEntity(queue_status=int(status), queue_status_text=pascal_name(status))


class MediaQueueItemMapper:
    def __init__(self, catalog: MediaCatalog, url_builder: MediaUrlBuilder):
        self.catalog = catalog
        self.url_builder = url_builder

    def to_web_entity(self, item: Optional[MediaQueueItem]) -> Optional[MediaQueueItemWebEntity]:
        """Raises InvalidMediaObjectError when the item's media object is gone."""
        if item is None:
            return None

        media_object = self.catalog.get(item.media_object_id)
        thumbnail_url = self.url_builder.media_object_url(media_object, DisplayObjectType.THUMBNAIL)

        return MediaQueueItemWebEntity(
            media_queue_id=item.media_queue_id,
            media_object_id=item.media_object_id,
            status_int=int(item.status),
            status=pascal_name(item.status),
            status_detail=item.status_detail,
            conversion_type=pascal_name(item.conversion_type),
            rotation_amount=pascal_name(item.rotate_flip_amount),
            date_added=item.date_added,
            date_conversion_started=item.date_conversion_started,
            date_conversion_completed=item.date_conversion_completed,
            duration_ms=get_duration_ms(item),
            original_filename=media_object.original.file_name,
            new_filename=item.new_filename,
            thumbnail_url=strip_host(thumbnail_url),
            media_object_title=media_object.title,
            album_id=media_object.album.id,
            album_title=media_object.album.title,
        )
