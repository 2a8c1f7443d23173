import pytest
import json
from mediaqueue.exceptions import CatalogIndexError, InvalidMediaObjectError
from mediaqueue.infrastructure.media_catalog import MediaCatalog, MediaObjectIndex, media_file_for

@pytest.fixture
def media_tree(tmp_path):
    root = tmp_path / "media"
    (root / "b_trip").mkdir(parents=True)
    (root / "a_party").mkdir()
    (root / "_optimized" / "a_party").mkdir(parents=True)
    (root / "intro.mp4").write_bytes(b"x")
    (root / "notes.txt").write_bytes(b"x")
    (root / "a_party" / "dance.MOV").write_bytes(b"x")
    (root / "a_party" / "song.mp3").write_bytes(b"x")
    (root / "b_trip" / "beach.mp4").write_bytes(b"x")
    (root / "_optimized" / "a_party" / "zo_dance.mp4").write_bytes(b"x")
    return root

def test_media_file_for_guesses_mime_type(tmp_path):
    media_file = media_file_for(tmp_path / "clip.mp4")
    assert media_file.file_name == "clip.mp4"
    assert media_file.mime_type == "video/mp4"
    assert media_file_for(tmp_path / "blob.zzz").mime_type == "application/octet-stream"

def test_scan_assigns_ids_in_sorted_order(media_tree):
    catalog = MediaCatalog.scan(media_tree, [".mp4", ".mov", "mp3"])
    names = [mo.original.file_name for mo in catalog.media_objects()]
    assert names == ["intro.mp4", "dance.MOV", "song.mp3", "beach.mp4"]
    assert [mo.id for mo in catalog.media_objects()] == [1, 2, 3, 4]

def test_scan_builds_albums(media_tree):
    catalog = MediaCatalog.scan(media_tree, [".mp4", ".mov", ".mp3"])
    assert catalog.get(1).album.id == 1
    assert catalog.get(2).album.title == "a_party"
    assert catalog.get(4).album.title == "b_trip"
    assert catalog.get(2).album.id != catalog.get(4).album.id

def test_scan_skips_optimized_tree_and_links_optimized_files(media_tree):
    catalog = MediaCatalog.scan(media_tree, [".mp4", ".mov", ".mp3"])
    assert len(catalog) == 4
    dance = catalog.get(2)
    assert dance.optimized is not None
    assert dance.optimized.file_name == "zo_dance.mp4"
    assert catalog.get(1).optimized is None

def test_scan_sets_title_and_gallery(media_tree):
    catalog = MediaCatalog.scan(media_tree, [".mp4"], gallery_id=7)
    assert catalog.get(1).title == "intro"
    assert catalog.get(1).gallery_id == 7

def test_get_unknown_raises(media_tree):
    catalog = MediaCatalog.scan(media_tree, [".mp4"])
    with pytest.raises(InvalidMediaObjectError) as exc_info:
        catalog.get(99)
    assert exc_info.value.media_object_id == 99

def test_register(make_media_object):
    catalog = MediaCatalog()
    catalog.register(make_media_object(12))
    assert catalog.get(12).original.file_name == "video12.mp4"

def test_contains(media_tree):
    catalog = MediaCatalog.scan(media_tree, [".mp4"])
    assert 1 in catalog
    assert 99 not in catalog

def test_index_keeps_ids_when_files_are_added(media_tree, tmp_path):
    index_path = tmp_path / "media_index.json"
    first = MediaCatalog.scan(media_tree, [".mp4"], index_path=index_path)
    assert {mo.original.file_name: mo.id for mo in first.media_objects()} == {"intro.mp4": 1, "beach.mp4": 2}

    (media_tree / "a_party" / "cake.mp4").write_bytes(b"x")
    second = MediaCatalog.scan(media_tree, [".mp4"], index_path=index_path)

    assert second.get(1).original.file_name == "intro.mp4"
    assert second.get(2).original.file_name == "beach.mp4"
    assert second.get(3).original.path == media_tree / "a_party" / "cake.mp4"

def test_index_never_reuses_ids_of_removed_files(media_tree, tmp_path):
    index_path = tmp_path / "media_index.json"
    MediaCatalog.scan(media_tree, [".mp4"], index_path=index_path)

    (media_tree / "b_trip" / "beach.mp4").unlink()
    (media_tree / "b_trip" / "boat.mp4").write_bytes(b"x")
    catalog = MediaCatalog.scan(media_tree, [".mp4"], index_path=index_path)

    assert 2 not in catalog
    assert catalog.get(3).original.file_name == "boat.mp4"
    saved = json.loads(index_path.read_text(encoding="utf-8"))
    assert saved == {"next_id": 4, "objects": {"b_trip/boat.mp4": 3, "intro.mp4": 1}}

def test_index_without_path_follows_scan_order():
    index = MediaObjectIndex()
    assert index.id_for("b.mp4") == 1
    assert index.id_for("a.mp4") == 2
    assert index.id_for("b.mp4") == 1
    index.save()

def test_corrupt_index_raises(media_tree, tmp_path):
    index_path = tmp_path / "media_index.json"
    index_path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogIndexError):
        MediaCatalog.scan(media_tree, [".mp4"], index_path=index_path)
