"""Serialize element trees to local files and backup meta entries."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

BACKUP_META_PREFIX = "_elementor_data_backup_"


@dataclass(slots=True)
class TempFileResult:
    file_path: str
    size_bytes: int
    post_id: int
    created: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "size_bytes": self.size_bytes,
            "post_id": self.post_id,
            "created": self.created,
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """Render ``moment`` as ``2024-05-01T12:30:00.000Z``."""

    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def filesystem_timestamp(moment: datetime) -> str:
    return iso_timestamp(moment).replace(":", "-").replace(".", "-")


def write_json_file(
    directory: Path,
    post_id: int,
    payload: Any,
    *,
    prefix: str = "page",
    now: datetime | None = None,
) -> TempFileResult:
    """Write ``payload`` as pretty JSON to ``<directory>/<prefix>-<id>-<timestamp>.json``.

    Blocking; call through ``asyncio.to_thread`` from async code.
    """

    moment = now or utc_now()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{prefix}-{post_id}-{filesystem_timestamp(moment)}.json"
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    path.write_text(text, encoding="utf-8")
    return TempFileResult(
        file_path=str(path),
        size_bytes=path.stat().st_size,
        post_id=post_id,
        created=iso_timestamp(moment),
    )


def build_backup_entry(
    *,
    post_id: int,
    post_type: str,
    post_title: str,
    serialized_tree: str,
    backup_name: str | None = None,
    now: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    """Return ``(meta_key, record)`` for a backup stored in post meta."""

    moment = now or utc_now()
    timestamp = iso_timestamp(moment)
    key = f"{BACKUP_META_PREFIX}{int(moment.timestamp() * 1000)}"
    record = {
        "backup_name": backup_name or f"backup_{timestamp}",
        "timestamp": timestamp,
        "post_id": post_id,
        "post_type": post_type,
        "post_title": post_title,
        "elementor_data": serialized_tree,
    }
    return key, record
