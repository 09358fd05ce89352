"""Ingestion engine.

Turns file-creation events in the uploads directory into Slack posts.

Per-file state machine:
    arrived -> image / hidden / other          -> skipped (left in place)
    arrived -> .json that does not parse       -> discarded
    parsed  -> not a manifest                  -> discarded
    manifest -> key unknown/revoked/corrupt    -> discarded (with its image)
    manifest -> image missing / not an image   -> discarded (with its image)
    manifest -> publish failed                 -> discarded (with its image)
    manifest -> published                      -> processed (with its image)

Events are queued and drained by a single consumer, and the handler body
holds the engine lock, so only one file is ever being classified, validated
or moved at a time, in event-arrival order.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog
from pydantic import ValidationError as PydanticValidationError

from cspp.config import IngestConfig, PathsConfig
from cspp.errors import CsppError
from cspp.ingest import classifier
from cspp.ingest.classifier import FileKind
from cspp.ingest.fileops import move_to_dir, pretty_print
from cspp.models.manifest import ImageInfo
from cspp.services.api_key import CredentialStore, key_prefix
from cspp.services.dispatcher import UNKNOWN_AUTHOR, Dispatcher

logger = structlog.get_logger()


class IngestStatus(str, Enum):
    PROCESSED = "processed"
    DISCARDED = "discarded"
    SKIPPED = "skipped"


@dataclass
class IngestOutcome:
    """Result of handling one file event."""

    path: Path
    status: IngestStatus
    reason: str | None = None


class IngestionEngine:
    """Serializes processing of files arriving in the uploads directory.

    Usage:
        engine = IngestionEngine(paths, store, dispatcher, channel="C123")
        await engine.start()
        await engine.submit(path)  # waits while the queue is full
        await engine.stop()
    """

    def __init__(
        self,
        paths: PathsConfig,
        store: CredentialStore,
        dispatcher: Dispatcher,
        *,
        channel: str,
        config: IngestConfig | None = None,
    ) -> None:
        self._paths = paths
        self._store = store
        self._dispatcher = dispatcher
        self._channel = channel
        self._config = config or IngestConfig()
        self._log = logger.bind(component="ingest")

        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue[Path] = asyncio.Queue(maxsize=self._config.queue_size)
        self._consumer: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._consumer is not None

    # ---- Queue ----

    async def submit(self, path: str | os.PathLike[str]) -> None:
        """Queue a file for processing.

        Blocks while the queue is full, so a burst of events slows the
        watcher down instead of being dropped.
        """
        if self._queue.full():
            self._log.warning("ingest.queue_full", path=str(path), depth=self._queue.qsize())
        await self._queue.put(Path(path))
        self._log.debug("ingest.queued", path=str(path), depth=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def start(self) -> None:
        """Start the single consumer task."""
        if self._consumer is not None:
            self._log.warning("ingest.already_running")
            return
        self._consumer = asyncio.create_task(self._consume())
        self._log.info("ingest.started", uploads_dir=str(self._paths.uploads_dir))

    async def stop(self) -> None:
        """Stop the consumer, letting an in-flight file finish first."""
        if self._consumer is None:
            return

        self._log.info("ingest.stopping", pending=self._queue.qsize())
        # Wait for the current item (the lock holder) to complete
        async with self._lock:
            self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None
        self._log.info("ingest.stopped")

    async def _consume(self) -> None:
        while True:
            path = await self._queue.get()
            try:
                await self.handle_new_file(path)
            except Exception as e:
                self._log.exception("ingest.handler_error", path=str(path), error=str(e))
            finally:
                self._queue.task_done()

    # ---- Per-file pipeline ----

    async def handle_new_file(self, path: str | os.PathLike[str]) -> IngestOutcome:
        """Run one file through the pipeline, holding the engine lock."""
        path = Path(path)
        async with self._lock:
            outcome = await self._process(path)

        log = self._log.bind(path=str(path), status=outcome.status.value)
        if outcome.status is IngestStatus.PROCESSED:
            log.info("ingest.processed")
        elif outcome.status is IngestStatus.DISCARDED:
            log.warning("ingest.discarded", reason=outcome.reason)
        else:
            log.debug("ingest.skipped", reason=outcome.reason)
        return outcome

    async def _process(self, path: Path) -> IngestOutcome:
        if not await self._wait_until_stable(path):
            return IngestOutcome(path, IngestStatus.SKIPPED, "file vanished")

        kind = await asyncio.to_thread(classifier.classify, path)

        if kind is FileKind.IMAGE:
            return IngestOutcome(path, IngestStatus.SKIPPED, "image waits for its manifest")
        if kind is FileKind.OTHER:
            return IngestOutcome(path, IngestStatus.SKIPPED, "not a manifest")
        if kind is FileKind.INVALID_JSON:
            return await self._discard(path, None, "invalid json")

        try:
            info = ImageInfo.model_validate_json(await asyncio.to_thread(path.read_bytes))
        except (OSError, PydanticValidationError) as e:
            self._log.debug("ingest.decode_failed", path=str(path), error=str(e))
            return await self._discard(path, None, "not a manifest")

        pretty_print(info.model_dump(exclude={"api_key"}))
        image = info.resolve_image(self._paths.uploads_dir)

        valid, error = await asyncio.to_thread(self._store.validate, info.api_key)
        if not valid:
            return await self._discard(
                path,
                image,
                f"unauthorized key ({error.code if error else 'unknown'})",
            )

        if not classifier.is_image(image.name):
            return await self._discard(path, image, "manifest does not point at an image")
        if not await asyncio.to_thread(image.is_file):
            return await self._discard(path, None, "image missing")

        author = await self._author_for(info.api_key)
        try:
            await self._dispatcher.publish(image, author, info.caption, self._channel)
        except CsppError as e:
            self._log.error(
                "ingest.publish_failed",
                image=image.name,
                error=e.message,
            )
            return await self._discard(path, image, f"publish failed: {e.code}")
        except Exception as e:
            self._log.exception(
                "ingest.publish_failed",
                image=image.name,
                error=str(e),
            )
            return await self._discard(path, image, f"publish failed: {type(e).__name__}")

        await asyncio.to_thread(self._accept, path, image, info.api_key)
        return IngestOutcome(path, IngestStatus.PROCESSED)

    async def _author_for(self, api_key: str) -> str:
        """Display name of the key owner; never fails the submission."""
        try:
            entry = await asyncio.to_thread(self._store.load, api_key)
        except CsppError as e:
            self._log.error(
                "ingest.author_lookup_failed",
                key_prefix=key_prefix(api_key),
                error=e.message,
            )
            return UNKNOWN_AUTHOR
        return await self._dispatcher.resolve_display_name(entry.slack_id)

    def _accept(self, manifest: Path, image: Path, api_key: str) -> None:
        if self._is_ingress(image):
            move_to_dir(image, self._paths.processed_dir)
        move_to_dir(manifest, self._paths.processed_dir)
        self._store.touch(api_key)

    async def _discard(self, manifest: Path, image: Path | None, reason: str) -> IngestOutcome:
        await asyncio.to_thread(self._move_to_discard, manifest, image)
        return IngestOutcome(manifest, IngestStatus.DISCARDED, reason)

    def _move_to_discard(self, manifest: Path, image: Path | None) -> None:
        if image is not None and image.is_file() and self._is_ingress(image):
            move_to_dir(image, self._paths.discard_dir)
        move_to_dir(manifest, self._paths.discard_dir)

    def _is_ingress(self, path: Path) -> bool:
        """Only files inside the uploads directory are ever moved."""
        try:
            return path.resolve().parent == Path(self._paths.uploads_dir).resolve()
        except OSError:
            return False

    async def _wait_until_stable(self, path: Path) -> bool:
        """Wait for a dropped file to stop growing.

        Returns:
            False if the file disappeared meanwhile.
        """
        try:
            prev = path.stat().st_size
        except FileNotFoundError:
            return False
        for _ in range(self._config.stable_checks):
            await asyncio.sleep(self._config.stable_interval_seconds)
            try:
                cur = path.stat().st_size
            except FileNotFoundError:
                return False
            if cur == prev:
                return True
            prev = cur
        return True
