import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from mediaqueue.domain.models import MediaAssetRotateFlip, MediaQueueItemStatus, MediaQueueStatus
from mediaqueue.exceptions import InvalidMediaObjectError
from mediaqueue.hub.mapper import MediaQueueItemMapper, get_duration_ms, to_media_queue_web_entity
from mediaqueue.hub.urls import HostUrlTracker, MediaUrlBuilder

@pytest.fixture
def mapper(catalog):
    tracker = HostUrlTracker("http://gallery.local")
    return MediaQueueItemMapper(catalog, MediaUrlBuilder(tracker, "/gs"))

def test_duration_zero_before_start(make_item):
    assert get_duration_ms(make_item(1)) == 0.0

def test_duration_exact_once_completed(make_item):
    item = make_item(1, status=MediaQueueItemStatus.COMPLETE, started_min=10, completed_min=12)
    assert get_duration_ms(item) == 120_000.0
    # Completed items do not depend on the clock
    later = datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert get_duration_ms(item, now=later) == 120_000.0

def test_duration_grows_while_processing(make_item):
    item = make_item(1, status=MediaQueueItemStatus.PROCESSING, started_min=0)
    start = item.date_conversion_started
    first = get_duration_ms(item, now=start + timedelta(seconds=1))
    second = get_duration_ms(item, now=start + timedelta(seconds=3))
    assert first == 1000.0
    assert second >= first

def test_duration_reads_clock_at_call_time(make_item):
    item = make_item(1, status=MediaQueueItemStatus.PROCESSING, started_min=0)
    start = item.date_conversion_started
    with patch("mediaqueue.hub.mapper.utc_now", side_effect=[start + timedelta(seconds=2),
                                                             start + timedelta(seconds=5)]):
        assert get_duration_ms(item) == 2000.0
        assert get_duration_ms(item) == 5000.0

def test_to_media_queue_web_entity():
    entity = to_media_queue_web_entity(MediaQueueStatus.PROCESSING)
    assert entity.queue_status == 2
    assert entity.queue_status_text == "Processing"

def test_mapper_none_maps_to_none(mapper):
    assert mapper.to_web_entity(None) is None

def test_mapper_fills_media_object_details(mapper, make_item):
    item = make_item(4, media_object_id=2)
    item.rotate_flip_amount = MediaAssetRotateFlip.ROTATE_90_FLIP_NONE
    item.status_detail = "queued"

    entity = mapper.to_web_entity(item)

    assert entity.media_queue_id == 4
    assert entity.media_object_id == 2
    assert entity.status_int == 2
    assert entity.status == "Waiting"
    assert entity.conversion_type == "CreateOptimized"
    assert entity.rotation_amount == "Rotate90FlipNone"
    assert entity.status_detail == "queued"
    assert entity.original_filename == "video2.mp4"
    assert entity.media_object_title == "video2"
    assert entity.album_id == 1
    assert entity.album_title == "media"
    assert entity.date_conversion_started is None

def test_mapper_thumbnail_url_is_host_relative(mapper, make_item):
    mapper.url_builder.host_tracker.remember("https", "any-host.example:8443")
    entity = mapper.to_web_entity(make_item(1, media_object_id=3))
    assert entity.thumbnail_url == "/gs/handler/getmedia.ashx?moid=3&dt=1&g=1"

def test_mapper_unknown_media_object_raises(mapper, make_item):
    with pytest.raises(InvalidMediaObjectError):
        mapper.to_web_entity(make_item(1, media_object_id=999))
