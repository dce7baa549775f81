from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from selector_engine.core.exceptions import SnapshotStorageError
from selector_engine.core.metadata import Snapshot, SnapshotComparison, as_utc

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class SnapshotStore:
    """Append-only store of captured page markup, one JSON file per snapshot.

    Lookups by url or test file list every record and filter in memory, so they
    cost O(stored snapshots). ``cleanup`` takes no lock: a record it removes
    while another task is reading simply reads back as ``None``.
    """

    def __init__(
        self,
        root: str | Path = "snapshots",
        retention_days: int = 30,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.root = Path(root)
        self.retention_days = retention_days
        self.clock = clock or utc_now

    @staticmethod
    def snapshot_id(url: str, timestamp: datetime) -> str:
        url_hash = hashlib.md5(url.encode("utf-8")).hexdigest()[:8]
        return f"snapshot-{url_hash}-{timestamp.strftime('%Y%m%dT%H%M%S%fZ')}"

    async def save(
        self,
        url: str,
        markup: str,
        test_file: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Snapshot:
        return await asyncio.to_thread(self._save, url, markup, test_file, metadata)

    async def load(self, snapshot_id: str) -> Snapshot | None:
        return await asyncio.to_thread(self._load, snapshot_id)

    async def delete(self, snapshot_id: str) -> bool:
        return await asyncio.to_thread(self._delete, snapshot_id)

    async def list_by_url(self, url: str) -> list[Snapshot]:
        snapshots = await asyncio.to_thread(self._scan)
        return [snapshot for snapshot in snapshots if snapshot.url == url]

    async def get_latest(self, url: str) -> Snapshot | None:
        return await self.get_previous(url, 0)

    async def get_previous(self, url: str, n: int = 1) -> Snapshot | None:
        snapshots = _newest_first(await self.list_by_url(url))
        if n < 0 or len(snapshots) <= n:
            return None
        return snapshots[n]

    async def get_by_test_file(self, test_file: str) -> list[Snapshot]:
        snapshots = await asyncio.to_thread(self._scan)
        return _newest_first([snapshot for snapshot in snapshots if snapshot.test_file == test_file])

    async def cleanup(self, retention_days: int | None = None) -> int:
        days = self.retention_days if retention_days is None else retention_days
        return await asyncio.to_thread(self._cleanup, days)

    async def compare(self, before_id: str, after_id: str) -> SnapshotComparison | None:
        before = await self.load(before_id)
        after = await self.load(after_id)
        if before is None or after is None:
            return None
        markup_diff, changes = line_diff(before.markup, after.markup)
        return SnapshotComparison(before=before, after=after, markup_diff=markup_diff, changes_summary=changes)

    def _save(
        self,
        url: str,
        markup: str,
        test_file: str | None,
        metadata: dict[str, Any] | None,
    ) -> Snapshot:
        self._ensure_root()
        timestamp = as_utc(self.clock())
        while True:
            snapshot = Snapshot(
                id=self.snapshot_id(url, timestamp),
                url=url,
                markup=markup,
                timestamp=timestamp,
                test_file=test_file,
                metadata=metadata,
            )
            try:
                with self._path(snapshot.id).open("x", encoding="utf-8") as handle:
                    handle.write(snapshot.model_dump_json(indent=2))
            except FileExistsError:
                timestamp += timedelta(microseconds=1)
                continue
            except OSError as exc:
                raise SnapshotStorageError(f"Could not write snapshot {snapshot.id}: {exc}") from exc
            logger.info("Saved snapshot %s for %s", snapshot.id, url)
            return snapshot

    def _load(self, snapshot_id: str) -> Snapshot | None:
        if not snapshot_id or Path(snapshot_id).name != snapshot_id:
            return None
        return self._read(self._path(snapshot_id))

    def _delete(self, snapshot_id: str) -> bool:
        if not snapshot_id or Path(snapshot_id).name != snapshot_id:
            return False
        try:
            self._path(snapshot_id).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise SnapshotStorageError(f"Could not delete snapshot {snapshot_id}: {exc}") from exc
        return True

    def _scan(self) -> list[Snapshot]:
        if not self.root.exists():
            return []
        try:
            paths = sorted(self.root.glob("*.json"))
        except OSError as exc:
            raise SnapshotStorageError(f"Could not list snapshots in {self.root}: {exc}") from exc
        snapshots: list[Snapshot] = []
        for path in paths:
            snapshot = self._read(path)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def _cleanup(self, retention_days: int) -> int:
        cutoff = as_utc(self.clock()) - timedelta(days=retention_days)
        deleted = 0
        for snapshot in self._scan():
            if snapshot.timestamp < cutoff and self._delete(snapshot.id):
                deleted += 1
        logger.info("Removed %d snapshots older than %s", deleted, cutoff.isoformat())
        return deleted

    def _read(self, path: Path) -> Snapshot | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            logger.warning("Skipping unreadable snapshot %s: %s", path.name, exc.reason)
            return None
        except OSError as exc:
            raise SnapshotStorageError(f"Could not read snapshot {path.name}: {exc}") from exc
        try:
            return Snapshot.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Skipping unreadable snapshot %s: %s", path.name, exc.errors()[:1])
            return None

    def _ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SnapshotStorageError(f"Could not create snapshot directory {self.root}: {exc}") from exc

    def _path(self, snapshot_id: str) -> Path:
        return self.root / f"{snapshot_id}.json"


def line_diff(before: str, after: str) -> tuple[str, list[str]]:
    """Position-by-position line comparison of two markup blobs."""

    before_lines = before.split("\n")
    after_lines = after.split("\n")
    diff_lines: list[str] = []
    added = 0
    removed = 0
    for index in range(max(len(before_lines), len(after_lines))):
        before_line = before_lines[index] if index < len(before_lines) else ""
        after_line = after_lines[index] if index < len(after_lines) else ""
        if before_line == after_line:
            continue
        if before_line:
            diff_lines.append(f"- {before_line}")
            removed += 1
        if after_line:
            diff_lines.append(f"+ {after_line}")
            added += 1

    changes: list[str] = []
    if added:
        changes.append(f"{added} lines added")
    if removed:
        changes.append(f"{removed} lines removed")
    return "\n".join(diff_lines), changes


def _newest_first(snapshots: list[Snapshot]) -> list[Snapshot]:
    return sorted(snapshots, key=lambda snapshot: (snapshot.timestamp, snapshot.id), reverse=True)
