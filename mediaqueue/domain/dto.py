"""Client-facing representations of the media queue.

These are what push clients and pull callers receive. Field names
serialize in PascalCase (``MediaQueueId``, ``StatusInt``...) so browser code
written against the gallery's queue page keeps working.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_pascal


class WebEntity(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class MediaQueueWebEntity(WebEntity):
    """Aggregate queue status: integer value plus its text."""

    queue_status: int
    queue_status_text: str


class MediaQueueItemWebEntity(WebEntity):
    """A queue item with its media object details and a host-relative thumbnail URL.

    ``date_conversion_started`` is None until processing begins and
    ``date_conversion_completed`` is None until the item is terminal;
    clients rely on that to tell waiting, running and finished items apart.
    """

    media_queue_id: int
    media_object_id: int
    status_int: int
    status: str
    status_detail: str = ""
    conversion_type: str
    rotation_amount: str
    date_added: datetime
    date_conversion_started: Optional[datetime] = None
    date_conversion_completed: Optional[datetime] = None
    duration_ms: float = 0.0
    original_filename: str
    new_filename: Optional[str] = None
    thumbnail_url: str
    media_object_title: str
    album_id: int
    album_title: str
