"""Connected push clients.

Each client gets its own bounded queue of ready-to-send SSE messages. A
slow client whose queue fills up misses messages; it never blocks the
publisher or the other clients.
"""
import json
import logging
import queue
import threading
from typing import Any, Dict, Tuple

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_QUEUE_SIZE = 1000


def serialize_payload(payload: Any) -> str:
    """JSON text of a broadcast payload (DTOs by their PascalCase aliases)."""
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True)
    return json.dumps(payload)


def format_sse_message(message_name: str, data: str) -> str:
    """Server-Sent Events frame for already-serialized JSON ``data``."""
    return f"event: {message_name}\ndata: {data}\n\n"


def format_sse_comment(comment: str) -> str:
    return f": {comment}\n\n"


class HubClients:
    """Registry of push subscribers and the broadcast fan-out."""

    def __init__(self, max_queue_size: int = DEFAULT_CLIENT_QUEUE_SIZE):
        self.max_queue_size = max_queue_size
        self._clients: Dict[str, "queue.Queue[str]"] = {}
        self._next_client_id = 1
        self._lock = threading.Lock()

    def connect(self) -> Tuple[str, "queue.Queue[str]"]:
        with self._lock:
            client_id = f"client_{self._next_client_id}"
            self._next_client_id += 1
            client_queue: "queue.Queue[str]" = queue.Queue(maxsize=self.max_queue_size)
            self._clients[client_id] = client_queue
        logger.info(f"Push client {client_id} connected")
        return client_id, client_queue

    def disconnect(self, client_id: str):
        with self._lock:
            removed = self._clients.pop(client_id, None)
        if removed is not None:
            logger.info(f"Push client {client_id} disconnected")

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def broadcast(self, message_name: str, payload: Any = None) -> int:
        """Sends one message to every connected client. Returns how many received it."""
        with self._lock:
            targets = list(self._clients.items())
        if not targets:
            return 0

        message = format_sse_message(message_name, serialize_payload(payload))
        delivered = 0
        for client_id, client_queue in targets:
            try:
                client_queue.put_nowait(message)
                delivered += 1
            except queue.Full:
                logger.warning(f"Push client {client_id} queue full, dropping {message_name}")

        logger.debug(f"Broadcast {message_name} to {delivered} clients")
        return delivered
