"""Shared fixtures for CSPP tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from cspp.config import IngestConfig, PathsConfig, Settings, SlackConfig
from cspp.models.api_key import ApiEntry
from cspp.services.api_key import CredentialStore
from tests.fakes import FakeDispatcher


@pytest.fixture
def paths(tmp_path: Path) -> PathsConfig:
    """Data directory layout under tmp_path, all directories created."""
    paths = PathsConfig(data_dir=tmp_path / "data")
    for directory in paths.all_dirs():
        directory.mkdir(parents=True, exist_ok=True)
    return paths


@pytest.fixture
def store(paths: PathsConfig) -> CredentialStore:
    return CredentialStore(paths.credentials_dir)


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher(display_names={"U12345": "alice"})


@pytest.fixture
def settings(paths: PathsConfig) -> Settings:
    return Settings(
        paths=paths,
        slack=SlackConfig(token="xoxb-test", channel="C0CHANNEL", team_id="T0TEAM"),
        ingest=IngestConfig(stable_checks=0, scan_on_startup=False),
    )


def write_entry(credentials_dir: Path, entry: ApiEntry) -> Path:
    """Write a credential file directly, bypassing the store."""
    path = credentials_dir / f"{entry.api_key}.json"
    path.write_text(json.dumps(entry.model_dump()))
    return path


@pytest.fixture
def make_entry(paths: PathsConfig):
    """Factory writing an ApiEntry into the credentials dir."""

    def _make(api_key: str, slack_id: str = "U12345", revoked: bool = False) -> ApiEntry:
        entry = ApiEntry(
            api_key=api_key,
            issue_date="2024-01-01T00:00:00Z",
            slack_id=slack_id,
            revoked=revoked,
        )
        write_entry(paths.credentials_dir, entry)
        return entry

    return _make
