"""API key credential store.

Handles key generation, persistence, validation and revocation. Every
issued key lives in its own JSON file under the credentials directory,
named after the key itself.

Authorization is fail-safe-deny: a credential that cannot be read or
parsed is treated exactly like a revoked one.
"""

from __future__ import annotations

import json
import os
import uuid
from pathlib import Path

import structlog
from pydantic import ValidationError as PydanticValidationError

from cspp.errors import CredentialCorruptError, CredentialNotFoundError, CsppError, RevokedKeyError
from cspp.models.api_key import ApiEntry
from cspp.utils.datetime import utcnow_iso

logger = structlog.get_logger()

_KEY_DISPLAY_LEN = 8  # chars of the key shown in logs


def key_prefix(api_key: str) -> str:
    """Shortened key for log output."""
    return api_key[:_KEY_DISPLAY_LEN]


class CredentialStore:
    """On-disk registry of issued API keys."""

    def __init__(self, credentials_dir: Path) -> None:
        self._dir = Path(credentials_dir)
        self._log = logger.bind(component="credential_store")

    @property
    def directory(self) -> Path:
        return self._dir

    @staticmethod
    def generate_key() -> str:
        """Generate a new random API key (UUID4, 122 random bits)."""
        return str(uuid.uuid4())

    def path_for(self, api_key: str) -> Path:
        """Credential file path for a key.

        Raises:
            CredentialNotFoundError: If the key cannot name a file in the
                credentials directory (empty, hidden, or containing a path
                separator).
        """
        if (
            not api_key
            or api_key.startswith(".")
            or "/" in api_key
            or "\\" in api_key
            or "\x00" in api_key
        ):
            raise CredentialNotFoundError(details={"reason": "malformed key"})
        return self._dir / f"{api_key}.json"

    # ---- Persistence ----

    def save(self, entry: ApiEntry) -> Path:
        """Write an entry to ``<credentials_dir>/<api_key>.json``."""
        path = self.path_for(entry.api_key)
        self._dir.mkdir(parents=True, exist_ok=True)

        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(json.dumps(entry.model_dump(), indent=2) + "\n")
        try:
            os.chmod(tmp_path, 0o600)
        except OSError:
            self._log.warning("credential.chmod_failed", path=str(tmp_path))
        os.replace(tmp_path, path)
        return path

    def load_file(self, path: Path) -> ApiEntry:
        """Load an entry from an explicit file path.

        Raises:
            CredentialNotFoundError: File does not exist
            CredentialCorruptError: File is unreadable (including a directory
                or undecodable bytes) or not a valid entry
        """
        path = Path(path)
        try:
            content = path.read_bytes()
        except FileNotFoundError as e:
            raise CredentialNotFoundError(details={"path": str(path)}) from e
        except OSError as e:
            raise CredentialCorruptError(details={"path": str(path), "error": str(e)}) from e

        try:
            return ApiEntry.model_validate_json(content.decode("utf-8"))
        except (PydanticValidationError, UnicodeDecodeError) as e:
            raise CredentialCorruptError(
                details={"path": str(path), "error": str(e)}
            ) from e

    def load(self, api_key: str) -> ApiEntry:
        """Load the entry for a key.

        Raises:
            CredentialNotFoundError: No entry for the key
            CredentialCorruptError: Entry exists but cannot be parsed, or its
                stored key disagrees with its filename
        """
        path = self.path_for(api_key)
        entry = self.load_file(path)
        if entry.api_key != api_key:
            raise CredentialCorruptError(
                "API key record does not match its filename",
                details={"path": str(path)},
            )
        return entry

    # ---- Lifecycle ----

    def issue(self, slack_id: str) -> ApiEntry:
        """Issue and persist a new key bound to a Slack identity."""
        entry = ApiEntry(
            api_key=self.generate_key(),
            issue_date=utcnow_iso(),
            last_used="",
            slack_id=slack_id,
            revoked=False,
        )
        self.save(entry)
        self._log.info(
            "credential.issued",
            key_prefix=key_prefix(entry.api_key),
            slack_id=slack_id,
        )
        return entry

    def validate(self, api_key: str) -> tuple[bool, CsppError | None]:
        """Check whether a key may be used.

        Returns:
            ``(True, None)`` for a loadable, non-revoked key; otherwise
            ``(False, error)`` where error is RevokedKeyError,
            CredentialNotFoundError or CredentialCorruptError.
        """
        try:
            entry = self.load(api_key)
        except (CredentialNotFoundError, CredentialCorruptError) as e:
            self._log.debug(
                "credential.validate.failed",
                key_prefix=key_prefix(api_key),
                reason=e.code,
            )
            return False, e

        if entry.is_revoked():
            self._log.debug("credential.validate.revoked", key_prefix=key_prefix(api_key))
            return False, RevokedKeyError()

        return True, None

    def revoke(self, api_key: str) -> bool:
        """Mark a key as revoked.

        Returns:
            False without writing anything when the key does not resolve to a
            readable entry; True otherwise (including already-revoked keys).
        """
        try:
            entry = self.load(api_key)
        except (CredentialNotFoundError, CredentialCorruptError) as e:
            self._log.warning(
                "credential.revoke.unknown_key",
                key_prefix=key_prefix(api_key),
                reason=e.code,
            )
            return False

        if entry.revoked:
            return True

        entry.revoked = True
        self.save(entry)
        self._log.info("credential.revoked", key_prefix=key_prefix(api_key))
        return True

    def is_revoked(self, path: Path) -> tuple[bool, Exception | None]:
        """Revocation status of a credential file.

        Any read or parse error reports the credential as revoked.
        """
        try:
            entry = self.load_file(path)
        except CsppError as e:
            return True, e
        return entry.is_revoked(), None

    def touch(self, api_key: str) -> None:
        """Record that a key was just used. Failures are only logged."""
        try:
            entry = self.load(api_key)
            entry.last_used = utcnow_iso()
            self.save(entry)
        except (CsppError, OSError) as e:
            self._log.warning(
                "credential.touch_failed",
                key_prefix=key_prefix(api_key),
                error=str(e),
            )

    # ---- Operator tooling ----

    def search_file(self, path: Path, api_key: str) -> bool:
        """Whether a credential file holds the given key.

        Raises:
            CredentialNotFoundError / CredentialCorruptError: unreadable file
        """
        return self.load_file(path).api_key == api_key

    def search(self, api_key: str) -> list[Path]:
        """Linear scan of the credentials directory for a key.

        Unparseable files are skipped.
        """
        matches: list[Path] = []
        if not self._dir.is_dir():
            return matches

        for path in sorted(self._dir.glob("*.json")):
            try:
                if self.search_file(path, api_key):
                    matches.append(path)
            except CsppError as e:
                self._log.warning("credential.search.skipped", path=str(path), reason=e.code)
        return matches
