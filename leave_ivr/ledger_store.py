"""
JSON file persistence for the leave ledger.

The whole ledger is one document. Every save writes a complete snapshot to a
temporary file beside the target and atomically replaces it, so a crash
mid-write leaves the previous snapshot intact.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from leave_ivr.models import LedgerDocument
from leave_ivr.observability import trace_span

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for ledger failures."""


class LedgerPersistenceError(LedgerError):
    """Raised when the ledger file cannot be read, parsed or written."""


class JsonLedgerStore:
    """Reads and writes the ledger document at a fixed path."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> LedgerDocument:
        """
        Read the full ledger.

        A missing file is an empty ledger. A file that exists but cannot be
        parsed is an error; it is never silently replaced.
        """
        if not self.path.exists():
            logger.info(f"No ledger at {self.path}, starting empty")
            return LedgerDocument()

        with trace_span("ledger_load", path=self.path):
            try:
                raw = self.path.read_text(encoding="utf-8")
            except OSError as e:
                raise LedgerPersistenceError(f"Cannot read ledger {self.path}: {e}") from e

            try:
                return LedgerDocument.model_validate_json(raw)
            except ValidationError as e:
                logger.error(f"Ledger file {self.path} is corrupt: {e}")
                raise LedgerPersistenceError(f"Ledger file {self.path} is corrupt") from e

    def save(self, document: LedgerDocument) -> None:
        """Overwrite the ledger with a full snapshot."""
        with trace_span("ledger_save", path=self.path, employees=len(document.employees)):
            payload = document.model_dump_json(indent=2)
            tmp_name = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self.path)
            except OSError as e:
                if tmp_name and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise LedgerPersistenceError(f"Cannot write ledger {self.path}: {e}") from e
