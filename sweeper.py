import asyncio
import os
import time
from typing import List, Optional

from constants import ARTIFACT_MAX_AGE_SECONDS, SWEEP_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class RetentionSweeper:
    """Periodically deletes uploaded artifacts older than ``max_age`` seconds.

    The sweeper only touches the artifact directory. It does not know about
    rooms, so a shared file can disappear while its room is still live.
    """

    def __init__(
        self,
        directory: str,
        max_age: float = ARTIFACT_MAX_AGE_SECONDS,
        interval: float = SWEEP_INTERVAL_SECONDS,
    ):
        self.directory = directory
        self.max_age = max_age
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Retention sweeper started for {self.directory} (every {self.interval}s, max age {self.max_age}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Retention sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as e:
                logger.error(f"Retention sweep of {self.directory} failed: {e}", exc_info=True)

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Run one pass and return the names of the files deleted."""
        if not os.path.isdir(self.directory):
            return []
        now = time.time() if now is None else now
        deleted = []
        for name in os.listdir(self.directory):
            path = os.path.join(self.directory, name)
            try:
                if not os.path.isfile(path):
                    continue
                age = now - os.path.getmtime(path)
                if age <= self.max_age:
                    continue
                os.remove(path)
            except FileNotFoundError:
                logger.debug(f"Artifact {name} vanished before it could be swept")
                continue
            except OSError as e:
                logger.warning(f"Could not delete artifact {name}: {e}")
                continue
            deleted.append(name)
            logger.info(f"Deleted old file: {name}")
        return deleted
