"""Per-branch watermarks.

A watermark is the timestamp of the newest punch already forwarded for a
branch. State lives in memory only; a restart starts from an empty store and
the first cycle per branch forwards the full device history again.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Optional


class WatermarkStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._marks: Dict[str, datetime] = {}

    def get(self, branch_id: str) -> Optional[datetime]:
        with self._lock:
            return self._marks.get(branch_id)

    def set(self, branch_id: str, ts: datetime) -> None:
        """Overwrite the watermark. Callers only pass values >= the current one."""

        with self._lock:
            self._marks[branch_id] = ts

    def snapshot(self) -> Dict[str, datetime]:
        with self._lock:
            return dict(self._marks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._marks)

    def __contains__(self, branch_id: object) -> bool:
        with self._lock:
            return branch_id in self._marks
