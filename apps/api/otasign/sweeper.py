"""
Retention sweep for the public artifact directory.

Published archives are only meant to live long enough to be installed, so
every ``interval`` seconds all regular files directly inside the directory
are deleted. The loop is an asyncio task owned by the app lifespan; stop()
cancels it and waits for it to finish.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger("otasign.sweeper")


def sweep_directory(directory: Path) -> int:
    """Delete every regular file directly in ``directory``. Returns the count."""
    removed = 0
    try:
        entries = list(os.scandir(directory))
    except OSError as exc:
        logger.error("Failed to read directory %s: %s", directory, exc)
        return 0

    for entry in entries:
        try:
            if not entry.is_file(follow_symlinks=False):
                continue
            os.unlink(entry.path)
            removed += 1
        except OSError as exc:
            logger.error("Failed to delete file %s: %s", entry.path, exc)
    return removed


class RetentionSweeper:
    """Runs sweep_directory on a fixed interval until stopped."""

    def __init__(self, directory: Path, interval: float):
        self.directory = directory
        self.interval = interval
        self.cycle_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                removed = await run_in_threadpool(sweep_directory, self.directory)
                self.cycle_count += 1
                logger.info("Retention sweep removed %d file(s) from %s", removed, self.directory)
            except Exception:
                logger.exception("Retention sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
