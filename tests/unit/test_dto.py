from datetime import datetime, timezone
from mediaqueue.domain.dto import MediaQueueItemWebEntity, MediaQueueWebEntity

def _entity(**overrides):
    values = dict(
        media_queue_id=3,
        media_object_id=9,
        status_int=2,
        status="Waiting",
        conversion_type="CreateOptimized",
        rotation_amount="NotSpecified",
        date_added=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        original_filename="clip.mov",
        thumbnail_url="/handler/getmedia.ashx?moid=9&dt=1&g=1",
        media_object_title="clip",
        album_id=1,
        album_title="Holidays",
    )
    values.update(overrides)
    return MediaQueueItemWebEntity(**values)

def test_media_queue_web_entity_uses_pascal_case():
    wire = MediaQueueWebEntity(queue_status=1, queue_status_text="Idle").to_wire()
    assert wire == {"QueueStatus": 1, "QueueStatusText": "Idle"}

def test_item_web_entity_wire_names():
    wire = _entity().to_wire()
    assert wire["MediaQueueId"] == 3
    assert wire["StatusInt"] == 2
    assert wire["ThumbnailUrl"].startswith("/handler/")
    assert wire["AlbumTitle"] == "Holidays"
    assert wire["DurationMs"] == 0.0

def test_item_web_entity_unset_dates_are_null():
    wire = _entity().to_wire()
    assert wire["DateConversionStarted"] is None
    assert wire["DateConversionCompleted"] is None
    assert wire["DateAdded"].startswith("2024-05-01T12:00:00")

def test_item_web_entity_accepts_wire_names():
    entity = MediaQueueItemWebEntity.model_validate(_entity().to_wire())
    assert entity.media_queue_id == 3
    assert entity.status == "Waiting"
