import glob
import json
import logging
import mimetypes
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional
from mediaqueue.domain.models import Album, MediaFile, MediaObject
from mediaqueue.exceptions import CatalogIndexError, InvalidMediaObjectError

def media_file_for(path: Path) -> MediaFile:
    mime_type, _ = mimetypes.guess_type(path.name)
    return MediaFile(file_name=path.name, path=path, mime_type=mime_type or "application/octet-stream")

class MediaObjectIndex:
    """Media object IDs keyed by path relative to the media root.

    Persisted as JSON so queue items keep pointing at the same file across
    rescans. IDs of files that disappear are never handed out again. With
    ``path=None`` the index lives in memory and IDs follow scan order.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._ids: Dict[str, int] = {}
        self._next_id = 1
        self._read()

    def _read(self):
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            self._ids = {str(k): int(v) for k, v in data.get("objects", {}).items()}
            self._next_id = max(int(data.get("next_id", 1)), max(self._ids.values(), default=0) + 1)
        except (OSError, ValueError, AttributeError) as exc:
            raise CatalogIndexError(f"Could not read media index {self.path}: {exc}") from exc

    def id_for(self, relative_path: str) -> int:
        media_object_id = self._ids.get(relative_path)
        if media_object_id is None:
            media_object_id = self._next_id
            self._ids[relative_path] = media_object_id
            self._next_id += 1
        return media_object_id

    def retain(self, relative_paths: Iterable[str]):
        """Drops entries for files no longer present."""
        keep = set(relative_paths)
        self._ids = {k: v for k, v in self._ids.items() if k in keep}

    def save(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        data = {"next_id": self._next_id, "objects": dict(sorted(self._ids.items()))}
        try:
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise CatalogIndexError(f"Could not write media index {self.path}: {exc}") from exc

class MediaCatalog:
    """Lookup of gallery media objects by ID."""

    def __init__(self):
        self._objects: Dict[int, MediaObject] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def register(self, media_object: MediaObject):
        with self._lock:
            self._objects[media_object.id] = media_object

    def get(self, media_object_id: int) -> MediaObject:
        with self._lock:
            media_object = self._objects.get(media_object_id)
        if media_object is None:
            raise InvalidMediaObjectError(media_object_id)
        return media_object

    def media_objects(self) -> Iterator[MediaObject]:
        with self._lock:
            objects = sorted(self._objects.values(), key=lambda mo: mo.id)
        yield from objects

    def __contains__(self, media_object_id: int) -> bool:
        with self._lock:
            return media_object_id in self._objects

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    @classmethod
    def scan(
        cls,
        root: Path,
        extensions: List[str],
        optimized_dir: str = "_optimized",
        gallery_id: int = 1,
        optimized_prefix: str = "zo_",
        index_path: Optional[Path] = None,
    ) -> "MediaCatalog":
        """Builds a catalog from a media directory tree.

        Each directory is an album (the root is album 1) and each file with a
        matching extension is a media object. New files get IDs in sorted
        traversal order; files already in the index at ``index_path`` keep
        their ID whatever else was added or removed.
        """
        catalog = cls()
        exts = {(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions}
        optimized_root = root / optimized_dir
        album_ids: Dict[Path, int] = {}
        index = MediaObjectIndex(index_path)
        seen: List[str] = []

        for dirpath, dirs, files in os.walk(str(root)):
            dir_path = Path(dirpath)
            # Ensure deterministic traversal and keep the optimized tree out of the catalog
            dirs[:] = sorted(d for d in dirs if (dir_path / d) != optimized_root)
            files.sort()

            album_id = album_ids.setdefault(dir_path, len(album_ids) + 1)
            album = Album(id=album_id, title=dir_path.name or str(dir_path))
            relative_dir = dir_path.relative_to(root)

            for file_name in files:
                file_path = dir_path / file_name
                if file_path.suffix.lower() not in exts:
                    continue
                relative_path = file_path.relative_to(root).as_posix()
                seen.append(relative_path)
                catalog.register(MediaObject(
                    id=index.id_for(relative_path),
                    title=file_path.stem,
                    gallery_id=gallery_id,
                    original=media_file_for(file_path),
                    optimized=cls._find_optimized(optimized_root / relative_dir, file_path.stem, optimized_prefix),
                    album=album,
                ))

        index.retain(seen)
        index.save()
        catalog.logger.info(f"Media catalog: {len(catalog)} objects in {len(album_ids)} albums under {root}")
        return catalog

    @staticmethod
    def _find_optimized(directory: Path, stem: str, prefix: str) -> Optional[MediaFile]:
        if not directory.is_dir():
            return None
        for candidate in sorted(directory.glob(glob.escape(f"{prefix}{stem}") + ".*")):
            if candidate.is_file():
                return media_file_for(candidate)
        return None
