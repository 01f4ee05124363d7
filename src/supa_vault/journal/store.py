"""JSONL store for pool activity and AI status rows."""

from __future__ import annotations

import json
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from supa_vault.types import ActivityRecord

_ALLOWED_KINDS = {
    "activity",
    "ai_status",
}


class JournalStore:
    """Append-only JSONL record store, one file per UTC day."""

    def __init__(self, journal_dir: Path) -> None:
        self._journal_dir = journal_dir
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, kind: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Append one record line to the daily JSONL file."""
        if kind not in _ALLOWED_KINDS:
            raise ValueError(f"unsupported_record_kind: {kind}")
        now = datetime.now(timezone.utc)
        record = {
            "created_at": now.isoformat(),
            "kind": kind,
            "payload": payload,
        }
        file_path = self._file_path_for_day(now.date())
        with self._lock, file_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=True) + "\n")
        return record

    def record_activity(self, activity: ActivityRecord) -> dict[str, Any]:
        return self.append("activity", activity.to_dict())

    def record_ai_status(self, status: dict[str, Any]) -> dict[str, Any]:
        return self.append("ai_status", status)

    def load_recent(self, limit: int, kind: str | None = None) -> list[dict[str, Any]]:
        """Load recent records (oldest first) from the most recent files."""
        if limit <= 0:
            return []

        rows: list[dict[str, Any]] = []
        files = sorted(self._journal_dir.glob("*.jsonl"), reverse=True)
        for file in files:
            lines = file.read_text(encoding="utf-8").splitlines()
            for line in reversed(lines):
                if not line.strip():
                    continue
                row = json.loads(line)
                if kind is not None and row.get("kind") != kind:
                    continue
                rows.append(row)
                if len(rows) >= limit:
                    return list(reversed(rows))
        return list(reversed(rows))

    def _file_path_for_day(self, day: date) -> Path:
        return self._journal_dir / f"{day.isoformat()}.jsonl"
