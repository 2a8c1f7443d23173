"""HTTP surface of the media queue.

Serves the queue status page, the push stream (Server-Sent Events), the
pull queries, the media handler thumbnail URLs point at, and the admin
cancel/delete API. Runs as a daemon thread alongside the queue worker.

No new dependencies: uses stdlib http.server + socketserver only.
Static page served from mediaqueue/infrastructure/web/.
"""
from __future__ import annotations

import hmac
import json
import logging
import queue
import shutil
import socketserver
import threading
import time
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, List, Optional
from urllib.parse import parse_qs, urlsplit

from mediaqueue.domain.dto import WebEntity
from mediaqueue.exceptions import InvalidMediaObjectError, UnknownHubMethodError
from mediaqueue.hub.clients import format_sse_comment, format_sse_message
from mediaqueue.hub.urls import DisplayObjectType, HostUrlTracker, MEDIA_HANDLER_PATH, get_query_int

if TYPE_CHECKING:
    from mediaqueue.config.models import ServerConfig
    from mediaqueue.hub.clients import HubClients
    from mediaqueue.hub.hub import MediaQueueHub
    from mediaqueue.infrastructure.media_catalog import MediaCatalog
    from mediaqueue.pipeline.conversion_queue import MediaConversionQueue

logger = logging.getLogger(__name__)

HUB_READ_ERROR = "Could not read the media queue. Please try again."
ADMIN_TOKEN_HEADER = "X-Admin-Token"

_STATIC_DIR = Path(__file__).parent / "web"

INDEX_HTML = (_STATIC_DIR / "index.html").read_text(encoding="utf-8")


def _to_json_value(result: Any) -> Any:
    if isinstance(result, WebEntity):
        return result.to_wire()
    if isinstance(result, list):
        return [_to_json_value(r) for r in result]
    return result


# ---------------------------------------------------------------------------
# HTTP server
# ---------------------------------------------------------------------------

class MediaQueueRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the media queue.

    Collaborators are class attributes, set on a per-server subclass by
    MediaQueueWebServer.start().
    """

    hub_factory: Callable[[], "MediaQueueHub"]
    clients: "HubClients"
    media_queue: "MediaConversionQueue"
    catalog: "MediaCatalog"
    host_tracker: HostUrlTracker
    config: "ServerConfig"
    stop_event: threading.Event

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)

    # -- responses ---------------------------------------------------------

    def _send_body(self, body: bytes, content_type: str, status: int = 200) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        self.end_headers()
        self.wfile.write(body)

    def _send_html(self, body: str, status: int = 200) -> None:
        self._send_body(body.encode("utf-8"), "text/html; charset=utf-8", status)

    def _send_json(self, value: Any, status: int = 200) -> None:
        self._send_body(json.dumps(_to_json_value(value)).encode("utf-8"), "application/json; charset=utf-8", status)

    def _send_text(self, text: str, status: int = 200) -> None:
        self._send_body(text.encode("utf-8"), "text/plain; charset=utf-8", status)

    # -- routing -----------------------------------------------------------

    def _route(self):
        """Records the request host and returns (path below app_path, query dict)."""
        self.host_tracker.remember(self.headers.get("X-Forwarded-Proto", "http"), self.headers.get("Host", ""))
        parts = urlsplit(self.path)
        path = parts.path
        app_path = self.config.app_path
        if app_path and (path == app_path or path.startswith(app_path + "/")):
            path = path[len(app_path):] or "/"
        return path, parse_qs(parts.query)

    def do_GET(self) -> None:
        path, query = self._route()
        try:
            if path in ("/", "/index.html"):
                self._send_html(INDEX_HTML)
            elif path == "/hub/events":
                self._stream_events()
            elif path.startswith("/hub/"):
                self._invoke_hub(path[len("/hub/"):])
            elif path == MEDIA_HANDLER_PATH:
                self._send_media(query)
            else:
                self._send_text("Not found", status=404)
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Client went away during %s", path)

    def do_POST(self) -> None:
        path, query = self._route()
        if path != "/api/mediaqueueitem/cancel":
            self._send_text("Not found", status=404)
            return
        if not self._is_admin():
            self._send_text("Forbidden", status=403)
            return
        try:
            media_queue_id = get_query_int(query, "mediaQueueId", 0)
            self.media_queue.cancel_media_queue_item(media_queue_id)
            self._send_text("Successfully canceled...")
        except Exception as exc:
            logger.exception("Error canceling media queue item")
            self._send_text(str(exc), status=500)

    def do_DELETE(self) -> None:
        path, _ = self._route()
        if path != "/api/mediaqueueitem":
            self._send_text("Not found", status=404)
            return
        if not self._is_admin():
            self._send_text("Forbidden", status=403)
            return
        try:
            media_queue_ids = self._read_id_list()
        except (TypeError, ValueError) as exc:
            self._send_text(f"Expected a JSON array of media queue IDs: {exc}", status=400)
            return
        try:
            for media_queue_id in media_queue_ids:
                self.media_queue.remove_media_queue_item(media_queue_id)
            self._send_text("Successfully deleted...")
        except Exception as exc:
            logger.exception("Error deleting media queue items")
            self._send_text(str(exc), status=500)

    # -- endpoints ---------------------------------------------------------

    def _is_admin(self) -> bool:
        expected = self.config.admin_token
        supplied = self.headers.get(ADMIN_TOKEN_HEADER)
        if not expected or not supplied:
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))

    def _read_id_list(self) -> List[int]:
        length = int(self.headers.get("Content-Length") or 0)
        data = json.loads(self.rfile.read(length) or b"[]")
        if not isinstance(data, list):
            raise ValueError("body is not an array")
        return [int(v) for v in data]

    def _invoke_hub(self, method_name: str) -> None:
        try:
            result = self.hub_factory().invoke(method_name)
        except UnknownHubMethodError as exc:
            self._send_json({"message": str(exc)}, status=404)
            return
        except Exception:
            # Already logged by the bridge
            self._send_json({"message": HUB_READ_ERROR}, status=500)
            return
        self._send_json(result)

    def _send_media(self, query: dict) -> None:
        media_object_id = get_query_int(query, "moid", 0)
        display_type = get_query_int(query, "dt", int(DisplayObjectType.THUMBNAIL))
        try:
            media_object = self.catalog.get(media_object_id)
        except InvalidMediaObjectError:
            self._send_text("Not found", status=404)
            return

        media_file = media_object.original
        if display_type == DisplayObjectType.OPTIMIZED and media_object.optimized is not None:
            media_file = media_object.optimized
        if not media_file.path.is_file():
            self._send_text("Not found", status=404)
            return

        self.send_response(200)
        self.send_header("Content-Type", media_file.mime_type)
        self.send_header("Content-Length", str(media_file.path.stat().st_size))
        self.send_header("Cache-Control", "max-age=3600")
        self.end_headers()
        with open(media_file.path, "rb") as f:
            shutil.copyfileobj(f, self.wfile)

    def _stream_events(self) -> None:
        """Push stream: ``connected`` first, then every broadcast until the client leaves."""
        client_id, client_queue = self.clients.connect()
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Connection", "keep-alive")
            self.end_headers()
            self._write_event(format_sse_message("connected", json.dumps({"clientId": client_id})))

            keepalive_s = self.config.keepalive_s
            last_write = time.monotonic()
            while not self.stop_event.is_set():
                try:
                    message = client_queue.get(timeout=min(keepalive_s, 0.5))
                except queue.Empty:
                    if time.monotonic() - last_write >= keepalive_s:
                        self._write_event(format_sse_comment("keepalive"))
                        last_write = time.monotonic()
                    continue
                self._write_event(message)
                last_write = time.monotonic()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            logger.debug(f"Push client {client_id} write failed: {exc}")
        finally:
            self.clients.disconnect(client_id)

    def _write_event(self, text: str) -> None:
        self.wfile.write(text.encode("utf-8"))
        self.wfile.flush()


class _ThreadingHTTPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """Thread-per-request HTTP server with address reuse and daemon threads."""

    allow_reuse_address = True
    daemon_threads = True  # request threads die when main thread exits


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class MediaQueueWebServer:
    """Media queue web server.

    Runs as a daemon thread; stops automatically when the process exits.

    Usage::

        server = MediaQueueWebServer(MediaQueueHub, clients, media_queue, catalog, tracker, config.server)
        server.start()   # non-blocking
        # ... queue runs ...
        server.stop()
    """

    def __init__(
        self,
        hub_factory: Callable[[], "MediaQueueHub"],
        clients: "HubClients",
        media_queue: "MediaConversionQueue",
        catalog: "MediaCatalog",
        host_tracker: HostUrlTracker,
        config: "ServerConfig",
    ) -> None:
        self.hub_factory = hub_factory
        self.clients = clients
        self.media_queue = media_queue
        self.catalog = catalog
        self.host_tracker = host_tracker
        self.config = config
        self._stop_event = threading.Event()
        self._server: Optional[_ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_address(self) -> Optional[tuple]:
        return self._server.server_address if self._server else None

    def start(self) -> bool:
        """Start the web server in a daemon background thread. Returns False if the port is taken."""
        handler = type("BoundMediaQueueRequestHandler", (MediaQueueRequestHandler,), {
            "hub_factory": staticmethod(self.hub_factory),
            "clients": self.clients,
            "media_queue": self.media_queue,
            "catalog": self.catalog,
            "host_tracker": self.host_tracker,
            "config": self.config,
            "stop_event": self._stop_event,
        })
        self._stop_event.clear()
        try:
            self._server = _ThreadingHTTPServer((self.config.host, self.config.port), handler)
        except OSError as exc:
            logger.warning("Web server: could not bind to %s:%d: %s", self.config.host, self.config.port, exc)
            return False

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="mediaqueue-web",
            daemon=True,
        )
        self._thread.start()
        host, port = self._server.server_address[:2]
        display_host = "localhost" if host in ("0.0.0.0", "::") else host
        logger.info("Media queue page: http://%s:%d%s/", display_host, port, self.config.app_path)
        return True

    def stop(self) -> None:
        """Gracefully stop the web server, ending open push streams."""
        self._stop_event.set()
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
