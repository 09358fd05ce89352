"""Uploads directory watcher.

A watchdog observer thread reports file creation (and rename-into) events;
they are handed over to the event loop, where ``DirectoryWatcher.run``
multiplexes three sources:
- file events, forwarded to the ingestion engine
- watch errors (the observer failed or died)
- the shutdown signal set by ``stop()``

An error or the shutdown signal ends the loop. A dead observer thread is
reported as an error by the periodic health check.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from cspp.ingest.classifier import has_json_extension, is_hidden
from cspp.ingest.engine import IngestionEngine

logger = structlog.get_logger()


class WatchError(Exception):
    """The filesystem watch stopped working."""


class _UploadsEventHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the event loop."""

    def __init__(self, watcher: "DirectoryWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as e:
            self._watcher.report_error(e)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._post_event(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writers create a temp file and rename it into place
        if not event.is_directory and self._watcher.owns(os.fsdecode(event.dest_path)):
            self._watcher._post_event(os.fsdecode(event.dest_path))


class DirectoryWatcher:
    """Watches the uploads directory and feeds the ingestion engine.

    Usage:
        watcher = DirectoryWatcher(uploads_dir, engine)
        watcher.start()
        task = asyncio.create_task(watcher.run())
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        directory: Path,
        engine: IngestionEngine,
        *,
        health_check_interval: float = 1.0,
    ) -> None:
        self._directory = Path(directory)
        self._engine = engine
        self._health_check_interval = health_check_interval
        self._log = logger.bind(component="watcher", directory=str(self._directory))

        self._observer: Observer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[str] = asyncio.Queue()
        self._errors: asyncio.Queue[Exception] = asyncio.Queue()
        self._shutdown = asyncio.Event()

    @property
    def is_watching(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def owns(self, path: str) -> bool:
        """Whether a path lies directly inside the watched directory."""
        return Path(path).parent.resolve() == self._directory.resolve()

    def start(self) -> None:
        """Start the observer thread.

        Raises:
            WatchError: If the directory cannot be watched.
        """
        if self._observer is not None:
            self._log.warning("watcher.already_started")
            return

        self._loop = asyncio.get_running_loop()
        observer = Observer()
        try:
            observer.schedule(_UploadsEventHandler(self), str(self._directory), recursive=False)
            observer.start()
        except OSError as e:
            self._log.error("watcher.start_failed", error=str(e))
            raise WatchError(f"Cannot watch {self._directory}: {e}") from e

        self._observer = observer
        self._log.info("watcher.started")

    async def scan_existing(self) -> int:
        """Queue manifests already present, oldest first.

        Recovers submissions left behind by a crash or restart.

        Returns:
            Number of manifests queued.
        """
        candidates = [
            p
            for p in self._directory.iterdir()
            if p.is_file() and not is_hidden(p.name) and has_json_extension(p.name)
        ]
        candidates.sort(key=lambda p: p.stat().st_mtime)
        for path in candidates:
            await self._engine.submit(path)
        if candidates:
            self._log.info("watcher.scan_existing", queued=len(candidates))
        return len(candidates)

    def _post_event(self, path: str) -> None:
        """Called from the observer thread."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._events.put_nowait, path)

    def report_error(self, error: Exception) -> None:
        """Feed a watch error into the loop (thread-safe)."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._errors.put_nowait, error)

    async def run(self) -> None:
        """Multiplex file events, watch errors and shutdown until one ends it."""
        if self._observer is None:
            self.start()

        self._log.debug("watcher.loop_started")
        shutdown_wait = asyncio.ensure_future(self._shutdown.wait())
        event_wait: asyncio.Future | None = None
        error_wait: asyncio.Future | None = None

        try:
            while True:
                if event_wait is None:
                    event_wait = asyncio.ensure_future(self._events.get())
                if error_wait is None:
                    error_wait = asyncio.ensure_future(self._errors.get())

                done, _ = await asyncio.wait(
                    {event_wait, error_wait, shutdown_wait},
                    timeout=self._health_check_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if event_wait in done:
                    path = event_wait.result()
                    event_wait = None
                    await self._engine.submit(path)

                if error_wait in done:
                    error = error_wait.result()
                    self._log.error("watcher.error", error=str(error))
                    return

                if shutdown_wait in done:
                    self._log.debug("watcher.shutdown_requested")
                    return

                if not done and not self.is_watching:
                    self.report_error(WatchError("observer thread stopped"))
        finally:
            for fut in (event_wait, error_wait, shutdown_wait):
                if fut is not None and not fut.done():
                    fut.cancel()
            await asyncio.to_thread(self._stop_observer)
            self._log.info("watcher.stopped")

    async def stop(self) -> None:
        """Signal the loop to exit and stop the observer thread."""
        self._shutdown.set()
        await asyncio.to_thread(self._stop_observer)

    def _stop_observer(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=5)
