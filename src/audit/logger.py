"""Gateway traffic ledger.

Every outbound send and every inbound callback may be recorded as one JSON
line. Each record carries a running ``seq`` and ``prev_hash``, the SHA-256 of
the record line before it. The chain runs across rotation: the first record
of a fresh file links to the last record of ``<name>.1``, so
``validate_audit_chain`` walks the backups oldest first, then the live file.

Async callers use ``record()``, which writes from a worker thread and logs
write failures instead of raising them.
"""

from __future__ import annotations

import asyncio
import fcntl
import hashlib
import json
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from src.models import AuditEvent

logger = logging.getLogger(__name__)

_DEFAULT_MAX_BYTES = 10_485_760
_DEFAULT_BACKUP_COUNT = 5
_TAIL_CHUNK = 4096


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def _tail_line(path: Path) -> str | None:
    """Return the last non-empty line of ``path`` without reading it whole."""
    try:
        with open(path, "rb") as handle:
            position = handle.seek(0, os.SEEK_END)
            chunk = b""
            while position > 0:
                step = min(_TAIL_CHUNK, position)
                position -= step
                handle.seek(position)
                chunk = handle.read(step) + chunk
                lines = chunk.rstrip(b"\n").split(b"\n")
                if len(lines) > 1 or position == 0:
                    return lines[-1].decode() or None
    except FileNotFoundError:
        return None
    return None


@contextmanager
def _exclusive(lock_path: Path) -> Iterator[None]:
    with open(lock_path, "w") as lock:
        fcntl.flock(lock, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock, fcntl.LOCK_UN)


def _backup_path(log_path: Path, index: int) -> Path:
    return log_path.with_name(f"{log_path.name}.{index}")


def _chain_files(log_path: Path) -> list[Path]:
    backups: list[Path] = []
    index = 1
    while _backup_path(log_path, index).exists():
        backups.append(_backup_path(log_path, index))
        index += 1
    return [*reversed(backups), log_path]


@dataclass
class ChainValidationResult:
    valid: bool
    records: int = 0
    broken_in: Path | None = None
    broken_at_line: int | None = None


def validate_audit_chain(
    log_path: Path, include_backups: bool = True,
) -> ChainValidationResult:
    """Verify ``seq`` continuity and hash links over the whole ledger.

    The first record checked is the anchor: it must have ``prev_hash`` null
    when its ``seq`` is 1; otherwise its predecessor was rotated away.
    """
    files = _chain_files(log_path) if include_backups else [log_path]
    previous: str | None = None
    previous_seq = 0
    count = 0

    for path in files:
        if not path.exists():
            continue
        for number, line in enumerate(path.read_text().splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                return ChainValidationResult(False, count, path, number)

            seq = record.get("seq")
            if previous is None:
                linked = seq != 1 or record.get("prev_hash") is None
            else:
                linked = (
                    seq == previous_seq + 1
                    and record.get("prev_hash") == _line_hash(previous)
                )
            if not linked:
                return ChainValidationResult(False, count, path, number)

            previous, previous_seq = line, seq
            count += 1

    return ChainValidationResult(valid=True, records=count)


class AuditLogger:
    """Append-only ledger shared by the gateway client and the webhook receiver.

    Safe to share between threads and between processes writing the same
    path; the tail of the ledger is re-read under the lock on every write.
    """

    def __init__(
        self,
        log_path: str,
        max_bytes: int = _DEFAULT_MAX_BYTES,
        backup_count: int = _DEFAULT_BACKUP_COUNT,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._lock_path = self.log_path.with_name(f".{self.log_path.name}.lock")
        self._thread_lock = threading.Lock()

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        """Create AuditLogger with rotation limits from the environment."""
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", _DEFAULT_MAX_BYTES)),
            backup_count=int(
                os.environ.get("AUDIT_LOG_BACKUP_COUNT", _DEFAULT_BACKUP_COUNT),
            ),
        )

    def _rotate_if_needed(self) -> None:
        try:
            size = self.log_path.stat().st_size
        except FileNotFoundError:
            return
        if size < self._max_bytes:
            return

        if self._backup_count < 1:
            self.log_path.unlink()
            return
        _backup_path(self.log_path, self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            source = _backup_path(self.log_path, index)
            if source.exists():
                source.rename(_backup_path(self.log_path, index + 1))
        self.log_path.rename(_backup_path(self.log_path, 1))
        logger.debug("Rotated audit log %s", self.log_path)

    def _last_record(self) -> str | None:
        tail = _tail_line(self.log_path)
        if tail is None and self._backup_count > 0:
            tail = _tail_line(_backup_path(self.log_path, 1))
        return tail

    def log(self, event: AuditEvent) -> None:
        """Append ``event`` synchronously. Raises OSError on write failure."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        with self._thread_lock, _exclusive(self._lock_path):
            self._rotate_if_needed()
            tail = self._last_record()
            seq = json.loads(tail).get("seq", 0) + 1 if tail else 1

            record: dict[str, object] = {"seq": seq}
            record.update(event.model_dump(mode="json"))
            record["prev_hash"] = _line_hash(tail) if tail else None

            with open(self.log_path, "a") as handle:
                handle.write(json.dumps(record, separators=(",", ":")) + "\n")

    async def record(self, event: AuditEvent) -> None:
        """Append ``event`` from async code without blocking the event loop."""
        try:
            await asyncio.to_thread(self.log, event)
        except (OSError, ValueError):
            logger.exception("Failed to write audit event %s", event.event_type.value)
