"""On-disk model records (size + acquisition time)."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .paths import model_id_from_directory

_UNITS = ("bytes", "KB", "MB", "GB", "TB")


@dataclass(frozen=True)
class ModelRecord:
    id: str
    path: str
    size_bytes: int
    acquired_at: datetime

    @property
    def formatted_size(self) -> str:
        size = float(self.size_bytes)
        for unit in _UNITS:
            if size < 1000 or unit == _UNITS[-1]:
                if unit == "bytes":
                    return f"{int(size)} bytes"
                return f"{size:.2f} {unit}"
            size /= 1000
        return f"{self.size_bytes} bytes"  # pragma: no cover

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "size_bytes": self.size_bytes,
            "acquired_at": self.acquired_at.isoformat(),
        }


def directory_size(path: Path) -> int:
    """Recursive size of regular files; hidden entries skipped."""
    total = 0
    with os.scandir(path) as it:
        for entry in it:
            if entry.name.startswith("."):
                continue
            if entry.is_dir(follow_symlinks=False):
                total += directory_size(Path(entry.path))
            elif entry.is_file():
                total += entry.stat().st_size
    return total


def creation_time(path: Path) -> datetime:
    st = path.stat()
    ts = getattr(st, "st_birthtime", None) or st.st_ctime
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def record_for(path: Path) -> ModelRecord:
    return ModelRecord(
        id=model_id_from_directory(path),
        path=str(path),
        size_bytes=directory_size(path),
        acquired_at=creation_time(path),
    )


__all__ = ["ModelRecord", "directory_size", "creation_time", "record_for"]
