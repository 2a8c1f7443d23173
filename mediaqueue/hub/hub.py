from typing import Any, Callable, Dict, List, Optional

from mediaqueue.domain.dto import MediaQueueItemWebEntity, MediaQueueWebEntity
from mediaqueue.exceptions import UnknownHubMethodError
from mediaqueue.hub.bridge import MediaQueueBridge, get_bridge


class MediaQueueHub:
    """Pull queries for one client request, answered by the process-wide bridge."""

    def __init__(self, bridge: Optional[MediaQueueBridge] = None):
        self.bridge = bridge or get_bridge()
        self._methods: Dict[str, Callable[[], Any]] = {
            "GetMediaQueue": self.get_media_queue,
            "GetCurrentMediaQueueItem": self.get_current_media_queue_item,
            "GetWaitingMediaQueueItems": self.get_waiting_media_queue_items,
            "GetCompleteMediaQueueItems": self.get_complete_media_queue_items,
        }

    def get_media_queue(self) -> MediaQueueWebEntity:
        return self.bridge.get_media_queue()

    def get_current_media_queue_item(self) -> Optional[MediaQueueItemWebEntity]:
        return self.bridge.get_current_media_queue_item()

    def get_waiting_media_queue_items(self) -> List[MediaQueueItemWebEntity]:
        return self.bridge.get_waiting_media_queue_items()

    def get_complete_media_queue_items(self) -> List[MediaQueueItemWebEntity]:
        return self.bridge.get_complete_media_queue_items()

    def invoke(self, method_name: str) -> Any:
        """Calls a hub method by its client-side name, e.g. ``GetWaitingMediaQueueItems``."""
        method = self._methods.get(method_name)
        if method is None:
            raise UnknownHubMethodError(method_name)
        return method()
