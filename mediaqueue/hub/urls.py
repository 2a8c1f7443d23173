"""Host-aware media URLs.

Thumbnail URLs are built against the host of the most recent HTTP request
and then made host-relative before they reach clients, so a page served
from any host name can load them.
"""
import threading
from enum import IntEnum
from typing import Mapping, Optional, Sequence, Union
from urllib.parse import urlsplit, urlunsplit

from mediaqueue.domain.models import MediaObject

MEDIA_HANDLER_PATH = "/handler/getmedia.ashx"


class DisplayObjectType(IntEnum):
    THUMBNAIL = 1
    OPTIMIZED = 2
    ORIGINAL = 3


class HostUrlTracker:
    """Remembers scheme://host of the latest request (e.g. ``http://gallery.example:8780``)."""

    def __init__(self, default_host_url: str = "http://localhost"):
        self.default_host_url = default_host_url.rstrip("/")
        self._host_url: Optional[str] = None
        self._lock = threading.Lock()

    def remember(self, scheme: str, host: str):
        if not host:
            return
        with self._lock:
            self._host_url = f"{scheme}://{host}"

    @property
    def host_url(self) -> str:
        with self._lock:
            return self._host_url or self.default_host_url


def get_media_object_url(host_url: str, app_path: str, media_object_id: int,
                         display_type: DisplayObjectType, gallery_id: int) -> str:
    return (
        f"{host_url.rstrip('/')}{app_path}{MEDIA_HANDLER_PATH}"
        f"?moid={media_object_id}&dt={int(display_type)}&g={gallery_id}"
    )


def strip_host(url: str) -> str:
    """Drops scheme and host: ``http://a.b/x?y=1`` -> ``/x?y=1``. Relative URLs pass through."""
    parts = urlsplit(url)
    return urlunsplit(("", "", parts.path, parts.query, parts.fragment))


def get_query_int(query: Mapping[str, Union[str, Sequence[str]]], name: str, default: int = 0) -> int:
    """Integer value of a query parameter, ``default`` when missing or not a number.

    Accepts both plain mappings and the list-valued dicts ``parse_qs`` returns.
    """
    value = query.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


class MediaUrlBuilder:
    def __init__(self, host_tracker: HostUrlTracker, app_path: str = ""):
        self.host_tracker = host_tracker
        self.app_path = app_path

    def media_object_url(self, media_object: MediaObject,
                         display_type: DisplayObjectType = DisplayObjectType.THUMBNAIL) -> str:
        return get_media_object_url(
            self.host_tracker.host_url, self.app_path, media_object.id, display_type, media_object.gallery_id
        )
