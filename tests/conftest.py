import threading
import pytest
import yaml
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional
from mediaqueue.config.models import AppConfig
from mediaqueue.domain.events import QUEUE_EVENT_TYPES
from mediaqueue.domain.models import (
    Album, MediaFile, MediaObject, MediaQueueItem, MediaQueueItemConversionType, MediaQueueItemStatus,
)
from mediaqueue.hub.bridge import reset_bridge
from mediaqueue.infrastructure.event_bus import EventBus
from mediaqueue.infrastructure.ffmpeg import ConversionResult
from mediaqueue.infrastructure.media_catalog import MediaCatalog
from mediaqueue.infrastructure.queue_store import QueueStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={"debug": False, "log_dir": "logs"},
        server={
            "host": "127.0.0.1",
            "port": 0,
            "app_path": "/gallery",
            "default_host_url": "http://gallery.local",
            "admin_token": "s3cret",
            "keepalive_s": 0.2,
        },
        queue={"store_path": None, "retention_days": 180, "auto_process": False},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mediaqueue.yaml"

    content = {
        'general': {'debug': False, 'log_dir': str(tmp_path / "logs")},
        'server': {'port': 9000, 'app_path': 'gallery/', 'admin_token': 'abc'},
        'queue': {'store_path': str(tmp_path / "queue.json"), 'retention_days': 30},
        'media': {'root': str(tmp_path / "media"), 'extensions': ['.mp4', '.mp3']},
        'encoder_settings': [
            {'source_extension': '.mp4', 'destination_extension': '.mp4',
             'arguments': '-i "{source}" "{destination}"', 'sequence': 0},
        ],
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def published_events(event_bus):
    """Records every queue event published on ``event_bus``."""
    events = []
    for event_type in QUEUE_EVENT_TYPES:
        event_bus.subscribe(event_type, events.append)
    return events

@pytest.fixture(autouse=True)
def _reset_bridge_singleton():
    reset_bridge()
    yield
    reset_bridge()

# ============================================================================
# Media Fixtures
# ============================================================================

@pytest.fixture
def make_media_object(tmp_path):
    """Factory for media objects backed by small files under tmp_path/media."""
    media_root = tmp_path / "media"

    def _make(media_object_id: int, file_name: str = None, album_id: int = 1,
              album_title: str = "media", gallery_id: int = 1) -> MediaObject:
        file_name = file_name or f"video{media_object_id}.mp4"
        path = media_root / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"dummy media content " * 10)
        return MediaObject(
            id=media_object_id,
            title=Path(file_name).stem,
            gallery_id=gallery_id,
            original=MediaFile(file_name=path.name, path=path, mime_type="video/mp4"),
            album=Album(id=album_id, title=album_title),
        )

    return _make

@pytest.fixture
def catalog(make_media_object):
    """Catalog with media objects 1-3."""
    catalog = MediaCatalog()
    for media_object_id in (1, 2, 3):
        catalog.register(make_media_object(media_object_id))
    return catalog

@pytest.fixture
def store():
    """In-memory queue store."""
    return QueueStore()

@pytest.fixture
def make_item():
    """Factory for queue items with timestamps relative to BASE_TIME."""
    def _make(media_queue_id: int, media_object_id: int = 1,
              status: MediaQueueItemStatus = MediaQueueItemStatus.WAITING,
              added_min: int = 0, started_min: Optional[int] = None, completed_min: Optional[int] = None,
              conversion_type: MediaQueueItemConversionType = MediaQueueItemConversionType.CREATE_OPTIMIZED,
              ) -> MediaQueueItem:
        def at(minutes):
            return None if minutes is None else BASE_TIME + timedelta(minutes=minutes)
        return MediaQueueItem(
            media_queue_id=media_queue_id,
            media_object_id=media_object_id,
            status=status,
            conversion_type=conversion_type,
            date_added=at(added_min),
            date_conversion_started=at(started_min),
            date_conversion_completed=at(completed_min),
        )
    return _make

# ============================================================================
# Converter Fixtures
# ============================================================================

class FakeConverter:
    """Stands in for FFmpegConverter: writes the destination file without running ffmpeg."""

    def __init__(self, output_root: Path):
        self.output_root = output_root
        self.available = True
        self.fail = False
        self.raise_error: Optional[Exception] = None
        self.block_until_canceled = False
        self.started = threading.Event()
        self.converted: List[int] = []

    def is_available(self) -> bool:
        return self.available

    def convert(self, item, media_object, cancel_event, on_output, on_new_filename) -> ConversionResult:
        self.started.set()
        if self.raise_error is not None:
            raise self.raise_error

        destination = self.output_root / f"zo_{media_object.original.path.stem}.mp4"
        on_new_filename(destination.name)
        on_output(f"frame=1 {media_object.original.file_name}")

        if self.block_until_canceled:
            cancel_event.wait(5.0)
            return ConversionResult(canceled=True, destination=destination)

        self.converted.append(item.media_queue_id)
        if self.fail:
            return ConversionResult(destination=destination, output="boom")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"optimized")
        return ConversionResult(file_created=True, destination=destination)

@pytest.fixture
def fake_converter(tmp_path):
    return FakeConverter(tmp_path / "media" / "_optimized")
