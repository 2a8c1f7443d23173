from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel

class MediaQueueStatus(IntEnum):
    UNKNOWN = 0
    IDLE = 1
    PROCESSING = 2
    PAUSED = 3

class MediaQueueItemStatus(IntEnum):
    UNKNOWN = 0
    ERROR = 1
    WAITING = 2
    PROCESSING = 3
    CANCELED = 4
    COMPLETE = 5

class MediaQueueItemConversionType(IntEnum):
    UNKNOWN = 0
    CREATE_OPTIMIZED = 1
    ROTATE_VIDEO = 2

class MediaAssetRotateFlip(IntEnum):
    NOT_SPECIFIED = 0
    ROTATE_0_FLIP_NONE = 1
    ROTATE_0_FLIP_X = 2
    ROTATE_0_FLIP_Y = 3
    ROTATE_90_FLIP_NONE = 4
    ROTATE_90_FLIP_X = 5
    ROTATE_90_FLIP_Y = 6
    ROTATE_180_FLIP_NONE = 7
    ROTATE_180_FLIP_X = 8
    ROTATE_180_FLIP_Y = 9
    ROTATE_270_FLIP_NONE = 10
    ROTATE_270_FLIP_X = 11
    ROTATE_270_FLIP_Y = 12

INCOMPLETE_STATUSES = frozenset({MediaQueueItemStatus.WAITING, MediaQueueItemStatus.PROCESSING})


def pascal_name(member: IntEnum) -> str:
    """Wire text of an enum member: ROTATE_90_FLIP_NONE -> Rotate90FlipNone."""
    return "".join(part.capitalize() for part in member.name.split("_"))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MediaQueueItem(BaseModel):
    """A single conversion job in the media queue.

    ``date_conversion_started`` is set once the item leaves WAITING;
    ``date_conversion_completed`` is set once it reaches a terminal status.
    """

    media_queue_id: int = 0
    media_object_id: int
    status: MediaQueueItemStatus = MediaQueueItemStatus.WAITING
    status_detail: str = ""
    conversion_type: MediaQueueItemConversionType = MediaQueueItemConversionType.UNKNOWN
    rotate_flip_amount: MediaAssetRotateFlip = MediaAssetRotateFlip.NOT_SPECIFIED
    date_added: datetime
    date_conversion_started: Optional[datetime] = None
    date_conversion_completed: Optional[datetime] = None
    new_filename: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status not in INCOMPLETE_STATUSES


class MediaFile(BaseModel):
    file_name: str
    path: Path
    mime_type: str = "application/octet-stream"

    @property
    def major_type(self) -> str:
        return self.mime_type.split("/", 1)[0]

class Album(BaseModel):
    id: int
    title: str

class MediaObject(BaseModel):
    id: int
    title: str
    gallery_id: int = 1
    original: MediaFile
    optimized: Optional[MediaFile] = None
    album: Album
