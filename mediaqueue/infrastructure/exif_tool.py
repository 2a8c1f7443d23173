import exiftool
import logging
import threading
from typing import List, Dict, Any
from mediaqueue.domain.models import MediaAssetRotateFlip, MediaObject

# EXIF Orientation (1-8) -> rotate/flip needed to display upright
_ORIENTATION_MAP = {
    1: MediaAssetRotateFlip.ROTATE_0_FLIP_NONE,
    2: MediaAssetRotateFlip.ROTATE_0_FLIP_X,
    3: MediaAssetRotateFlip.ROTATE_180_FLIP_NONE,
    4: MediaAssetRotateFlip.ROTATE_0_FLIP_Y,
    5: MediaAssetRotateFlip.ROTATE_90_FLIP_X,
    6: MediaAssetRotateFlip.ROTATE_90_FLIP_NONE,
    7: MediaAssetRotateFlip.ROTATE_270_FLIP_X,
    8: MediaAssetRotateFlip.ROTATE_270_FLIP_NONE,
}

_ROTATION_MAP = {
    0: MediaAssetRotateFlip.ROTATE_0_FLIP_NONE,
    90: MediaAssetRotateFlip.ROTATE_90_FLIP_NONE,
    180: MediaAssetRotateFlip.ROTATE_180_FLIP_NONE,
    270: MediaAssetRotateFlip.ROTATE_270_FLIP_NONE,
}

class ExifToolRotationReader:
    """Works out how much a media asset must be rotated, from its metadata (pyexiftool)."""

    ROTATION_TAGS = ["Composite:Rotation", "QuickTime:Rotation", "Track1:Rotation", "Rotation"]
    ORIENTATION_TAGS = ["EXIF:Orientation", "XMP:Orientation", "Orientation"]

    def __init__(self):
        self.et = exiftool.ExifTool()
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def read_tags(self, media_object: MediaObject) -> Dict[str, Any]:
        with self._lock:
            if not self.et.running:
                self.et.run()
            # -n returns numeric values (Orientation=6 rather than "Rotate 90 CW")
            metadata_list = self.et.execute_json("-n", str(media_object.original.path))
        if not metadata_list:
            raise ValueError(f"Could not extract metadata for {media_object.original.path}")
        return metadata_list[0]

    def calculate_needed_rotation(self, media_object: MediaObject) -> MediaAssetRotateFlip:
        try:
            data = self.read_tags(media_object)
        except Exception as exc:
            self.logger.warning(f"Rotation unknown for {media_object.original.file_name}: {exc}")
            return MediaAssetRotateFlip.NOT_SPECIFIED
        return rotation_from_tags(data, self.ROTATION_TAGS, self.ORIENTATION_TAGS)

    __call__ = calculate_needed_rotation

    def terminate(self):
        with self._lock:
            if self.et.running:
                self.et.terminate()


def rotation_from_tags(data: Dict[str, Any], rotation_tags: List[str], orientation_tags: List[str]) -> MediaAssetRotateFlip:
    """Maps a video Rotation tag or an image Orientation tag to a rotate/flip amount."""
    for tag in rotation_tags:
        if tag in data:
            try:
                degrees = int(float(data[tag])) % 360
            except (TypeError, ValueError):
                break
            return _ROTATION_MAP.get(degrees, MediaAssetRotateFlip.NOT_SPECIFIED)
    for tag in orientation_tags:
        if tag in data:
            try:
                return _ORIENTATION_MAP.get(int(data[tag]), MediaAssetRotateFlip.NOT_SPECIFIED)
            except (TypeError, ValueError):
                break
    return MediaAssetRotateFlip.ROTATE_0_FLIP_NONE
