import asyncio
import enum
import logging
import time

from filevault.core.exceptions import FileVaultError
from filevault.monitoring.setup import report_cleanup
from filevault.services.file_service import FileService

logger = logging.getLogger(__name__)


class SweeperState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ExpirySweeper:
    """
    Periodic deletion of expired files.

    ``start`` runs one sweep right away and then one every ``interval`` seconds.
    ``stop`` lets the in-flight sweep finish before returning; it may be called
    once per ``start``, later calls are no-ops.
    """

    def __init__(self, file_service: FileService, interval: float, batch_size: int, tick_timeout: float):
        self.file_service = file_service
        self.interval = interval
        self.batch_size = batch_size
        self.tick_timeout = tick_timeout
        self.state = SweeperState.IDLE
        self.total_deleted = 0
        self.total_failed = 0
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.state in (SweeperState.STOPPING, SweeperState.STOPPED):
            raise RuntimeError("Expiry sweeper has been stopped")
        if self._task is not None:
            logger.warning("Expiry sweeper already started")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="expiry-sweeper")
        logger.info("Cleanup task started: interval=%s batch_size=%s", self.interval, self.batch_size)

    async def stop(self) -> None:
        if self._task is None or self.state in (SweeperState.STOPPING, SweeperState.STOPPED):
            return
        self.state = SweeperState.STOPPING
        self._stop_event.set()
        try:
            await self._task
        finally:
            self.state = SweeperState.STOPPED
            logger.info("Cleanup task stopped: total_deleted=%s", self.total_deleted)

    async def _run(self) -> None:
        while True:
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                continue

    async def run_once(self) -> int:
        """One sweep, bounded by ``tick_timeout``. Returns the number of files deleted."""
        if self.state is SweeperState.IDLE:
            self.state = SweeperState.RUNNING
        started = time.monotonic()
        deleted = failed = 0

        try:
            result = await asyncio.wait_for(
                self.file_service.cleanup_expired_files(self.batch_size), self.tick_timeout
            )
            deleted, failed = result.deleted, result.failed
        except asyncio.TimeoutError:
            logger.error("Cleanup tick aborted after %ss, retrying next interval", self.tick_timeout)
        except FileVaultError as e:
            logger.error("Error cleaning up expired files: %s", e)
        except Exception as e:
            logger.exception("Cleanup loop error: %s", e)
        finally:
            if self.state is SweeperState.RUNNING:
                self.state = SweeperState.IDLE

        self.total_deleted += deleted
        self.total_failed += failed
        duration = time.monotonic() - started
        report_cleanup(deleted, failed, duration)
        logger.info("cleanup_summary files_deleted=%s failed_blob_deletes=%s duration=%.3fs total_files=%s",
                    deleted, failed, duration, self.total_deleted)
        return deleted
