"""Poll the knowledge directory and rebuild the store when sources change.

Additions, edits and removals of ``.md`` / ``.txt`` / ``.json`` files are
detected by comparing (mtime, size) fingerprints between polls.  The
persisted snapshot file is not a source and never triggers a reload.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path

from booking_assistant.knowledge.ingestion import list_source_files
from booking_assistant.knowledge.store import KnowledgeStore

logger = logging.getLogger(__name__)

Fingerprint = dict[str, tuple[int, int]]


def fingerprint(directory: Path, snapshot_name: str) -> Fingerprint:
    """Map each source filename to its (mtime_ns, size)."""
    try:
        paths = list_source_files(directory, snapshot_name)
    except OSError:
        return {}
    result: Fingerprint = {}
    for path in paths:
        try:
            stat = path.stat()
        except OSError:
            continue
        result[path.name] = (stat.st_mtime_ns, stat.st_size)
    return result


def describe_changes(before: Fingerprint, after: Fingerprint) -> list[str]:
    changes = [f"add {name}" for name in after.keys() - before.keys()]
    changes += [f"unlink {name}" for name in before.keys() - after.keys()]
    changes += [
        f"change {name}"
        for name in before.keys() & after.keys()
        if before[name] != after[name]
    ]
    return sorted(changes)


class KnowledgeWatcher:
    """Background task that keeps a :class:`KnowledgeStore` in sync with disk."""

    def __init__(self, store: KnowledgeStore, interval_seconds: float = 2.0) -> None:
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._last: Fingerprint = {}

    def _scan(self) -> Fingerprint:
        return fingerprint(self._store.directory, self._store.snapshot_path.name)

    async def check(self) -> bool:
        """Poll once; rebuild the store if anything changed since the last poll."""
        current = await asyncio.to_thread(self._scan)
        changes = describe_changes(self._last, current)
        self._last = current
        if not changes:
            return False

        logger.info("Knowledge base changed: %s", ", ".join(changes))
        await self._store.rebuild()
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.check()
            except Exception:
                logger.exception("Knowledge watcher error")

    async def start(self) -> None:
        """Record the current state of the directory and begin polling."""
        if self._task is not None:
            return
        self._last = await asyncio.to_thread(self._scan)
        self._task = asyncio.create_task(self._run(), name="knowledge-watcher")
        logger.info(
            "Watching %s for changes (interval=%.1fs)", self._store.directory, self._interval,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
