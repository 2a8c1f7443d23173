class MediaQueueError(Exception):
    """Base class for media queue errors."""


class InvalidMediaObjectError(MediaQueueError):
    """Raised when a media object ID does not resolve to a known media asset."""

    def __init__(self, media_object_id: int):
        super().__init__(f"No media object with ID {media_object_id}")
        self.media_object_id = media_object_id


class BridgeNotInitializedError(MediaQueueError):
    """Raised when the media queue bridge is requested before startup created it."""


class UnknownHubMethodError(MediaQueueError):
    """Raised when a client invokes a hub method that does not exist."""

    def __init__(self, method_name: str):
        super().__init__(f"Unknown hub method: {method_name}")
        self.method_name = method_name


class QueueStoreError(MediaQueueError):
    """Raised when the persisted queue file cannot be read or written."""


class CatalogIndexError(MediaQueueError):
    """Raised when the persisted media object ID index cannot be read or written."""
