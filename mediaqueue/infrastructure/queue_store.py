import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import ValidationError
from mediaqueue.domain.models import MediaQueueItem
from mediaqueue.exceptions import QueueStoreError

class QueueStore:
    """Persists media queue items as a JSON list.

    With ``path=None`` items are kept in memory only. Writes go to a
    temporary sibling file that is then moved over the real one, so a crash
    mid-write leaves the previous file intact.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._records: Dict[int, dict] = self._read()
        self._last_id = max(self._records, default=0)

    def _read(self) -> Dict[int, dict]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError) as exc:
            raise QueueStoreError(f"Could not read queue store {self.path}: {exc}") from exc
        return {int(r["media_queue_id"]): r for r in raw}

    def _write(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        data = sorted(self._records.values(), key=lambda r: r["media_queue_id"])
        try:
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise QueueStoreError(f"Could not write queue store {self.path}: {exc}") from exc

    def get_all(self) -> List[MediaQueueItem]:
        with self._lock:
            records = list(self._records.values())
        items = []
        for record in records:
            try:
                items.append(MediaQueueItem.model_validate(record))
            except ValidationError as exc:
                self.logger.warning(f"Skipping invalid queue record {record.get('media_queue_id')}: {exc}")
        return items

    def upsert(self, item: MediaQueueItem) -> int:
        """Saves the item. New items (ID <= 0) get the next free ID assigned in place."""
        with self._lock:
            if item.media_queue_id <= 0:
                self._last_id += 1
                item.media_queue_id = self._last_id
            self._records[item.media_queue_id] = item.model_dump(mode="json")
            self._write()
            return item.media_queue_id

    def delete(self, media_queue_id: int) -> bool:
        with self._lock:
            if self._records.pop(media_queue_id, None) is None:
                return False
            self._write()
            return True
