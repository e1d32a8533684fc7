"""API token persistence, mirrored into a second location for other processes."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .errors import CredentialError

logger = logging.getLogger(__name__)


def is_valid_token(token: str | None) -> bool:
    return bool(token) and ":" in token


def username_of(token: str | None) -> str:
    if not is_valid_token(token):
        return ""
    return token.partition(":")[0]


class StoredCredential(BaseModel):
    token: str
    written_at: datetime
    needs_refresh: bool = False


class CredentialStore:
    """Best-effort dual write of the token.

    The app writes ``primary`` and mirrors it to ``shared``. A secondary writer
    (for instance a share helper running in another process) only touches
    ``shared`` and sets ``needs_refresh``; on the next load the newer of the two
    wins and both files are brought back in line.
    """

    def __init__(self, primary: Path, shared: Path) -> None:
        self.primary = Path(primary).expanduser()
        self.shared = Path(shared).expanduser()

    @staticmethod
    def _read(path: Path) -> StoredCredential | None:
        if not path.exists():
            return None
        try:
            return StoredCredential.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable credentials at %s: %s", path, exc)
            return None

    @staticmethod
    def _write(path: Path, credential: StoredCredential) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(credential.model_dump_json(), encoding="utf-8")
        tmp.replace(path)

    def _mirror(self, credential: StoredCredential) -> None:
        try:
            self._write(self.shared, credential)
        except OSError as exc:
            logger.warning("Could not mirror credentials to %s: %s", self.shared, exc)

    def save(self, token: str) -> None:
        if not is_valid_token(token):
            raise CredentialError("Token must look like 'username:secret'")
        credential = StoredCredential(token=token, written_at=datetime.now(UTC))
        self._write(self.primary, credential)
        self._mirror(credential)

    def save_from_secondary(self, token: str) -> None:
        """Write as the secondary process would: shared file only, flagged."""
        if not is_valid_token(token):
            raise CredentialError("Token must look like 'username:secret'")
        self._write(
            self.shared,
            StoredCredential(token=token, written_at=datetime.now(UTC), needs_refresh=True),
        )

    def load(self) -> str | None:
        primary = self._read(self.primary)
        shared = self._read(self.shared)

        if shared is not None and shared.needs_refresh:
            if primary is None or shared.written_at >= primary.written_at:
                logger.info("Adopting token written to %s", self.shared)
                adopted = StoredCredential(token=shared.token, written_at=shared.written_at)
                self._write(self.primary, adopted)
                self._mirror(adopted)
                return adopted.token
            self._mirror(primary)
            return primary.token

        if primary is not None:
            return primary.token
        if shared is not None:
            return shared.token
        return None

    def clear(self) -> None:
        for path in (self.primary, self.shared):
            path.unlink(missing_ok=True)
