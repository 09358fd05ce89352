"""Uploads directory ingestion: classification, file moves, engine, watcher."""

from cspp.ingest.engine import IngestionEngine, IngestOutcome, IngestStatus
from cspp.ingest.watcher import DirectoryWatcher

__all__ = ["DirectoryWatcher", "IngestionEngine", "IngestOutcome", "IngestStatus"]
