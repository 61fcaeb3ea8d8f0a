"""
Append-only, hash-chained event log.

Every entry embeds the digest of the entry before it:

    digest = SHA-256(canonical_json({
        id, timestamp, level, message, payload, previousDigest, chainId
    }))

Entries below the configured minimum level are still stored and hashed;
the level only decides what reaches the sinks.

The log is an ordinary object. Applications that want a single shared log
construct one and pass it around (see :class:`proofchain_kernel.ProofContext`).
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from .canonical import canonicalize, format_timestamp, parse_timestamp, utc_now
from .config import EventLogConfig, LogLevel
from .errors import (
    ChainVerificationResult,
    ErrorCode,
    InvalidInputError,
    VerificationError,
)
from .hashing import ZERO_DIGEST, compare_hashes, hash_object, merkle_root
from .ids import generate_chain_id, sequence_id
from .sinks import ConsoleSink, FileSink, Sink, SinkDispatcher


logger = logging.getLogger(__name__)


def compute_entry_digest(
    entry_id: str,
    timestamp: datetime,
    level: LogLevel,
    message: str,
    payload: Any,
    previous_digest: str,
    chain_id: str,
) -> str:
    return hash_object({
        "id": entry_id,
        "timestamp": format_timestamp(timestamp),
        "level": int(level),
        "message": message,
        "payload": payload,
        "previousDigest": previous_digest,
        "chainId": chain_id,
    })


@dataclass(frozen=True)
class LogEntry:
    id: str
    timestamp: datetime
    level: LogLevel
    message: str
    digest: str
    previous_digest: str
    chain_id: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "level": int(self.level),
            "message": self.message,
            "digest": self.digest,
            "previousDigest": self.previous_digest,
            "chainId": self.chain_id,
        }
        if self.payload is not None:
            result["payload"] = self.payload
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "LogEntry":
        """
        Rebuild an entry from its exported form.

        Raises:
            InvalidInputError: if a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise InvalidInputError(
                f"Entry {index} must be an object",
                details={"index": index, "received": type(data).__name__},
            )
        for name in ("id", "timestamp", "level", "message", "digest", "previousDigest", "chainId"):
            if name not in data:
                raise InvalidInputError(
                    f"Entry {index} missing required field: {name}",
                    details={"index": index, "field": name},
                )
        for name in ("id", "timestamp", "message", "digest", "previousDigest", "chainId"):
            if not isinstance(data[name], str):
                raise InvalidInputError(
                    f"Entry {index} field {name} must be a string",
                    details={"index": index, "field": name},
                )
        try:
            timestamp = parse_timestamp(data["timestamp"])
        except ValueError as exc:
            raise InvalidInputError(
                f"Entry {index} has an invalid timestamp: {exc}",
                details={"index": index, "field": "timestamp"},
            ) from exc
        try:
            payload = canonicalize(data.get("payload"))
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(
                f"Entry {index} payload cannot be canonicalized: {exc}",
                details={"index": index, "field": "payload"},
            ) from exc

        return cls(
            id=data["id"],
            timestamp=timestamp,
            level=LogLevel.coerce(data["level"]),
            message=data["message"],
            digest=data["digest"],
            previous_digest=data["previousDigest"],
            chain_id=data["chainId"],
            payload=payload,
        )


def replay_entries(
    entries: list[LogEntry],
    last_digest: str | None = None,
) -> ChainVerificationResult:
    """
    Replay entries from the zero sentinel, reporting every broken link and
    every digest that does not re-derive.
    """
    errors: list[VerificationError] = []
    broken: list[int] = []
    first_error: str | None = None
    previous = ZERO_DIGEST

    def fail(index: int | None, code: ErrorCode, message: str, details: dict[str, Any]) -> None:
        nonlocal first_error
        errors.append(VerificationError(code=code, message=message, details=details))
        if first_error is None:
            first_error = message
        if index is not None and (not broken or broken[-1] != index):
            broken.append(index)

    for i, entry in enumerate(entries):
        if not compare_hashes(entry.previous_digest, previous):
            fail(i, ErrorCode.HASH_CHAIN_BROKEN,
                 f"Broken link at entry {i}: previousDigest mismatch",
                 {"index": i, "expected": previous, "actual": entry.previous_digest})

        expected = compute_entry_digest(
            entry.id, entry.timestamp, entry.level, entry.message,
            entry.payload, entry.previous_digest, entry.chain_id,
        )
        if not compare_hashes(entry.digest, expected):
            fail(i, ErrorCode.ENTRY_HASH_MISMATCH,
                 f"Invalid digest at entry {i}",
                 {"index": i, "expected": expected, "actual": entry.digest})

        previous = entry.digest

    if last_digest is not None and not compare_hashes(last_digest, previous):
        fail(None, ErrorCode.LAST_DIGEST_MISMATCH,
             "Last digest does not match the final entry",
             {"expected": previous, "actual": last_digest})

    return ChainVerificationResult(
        valid=not errors,
        total_records=len(entries),
        valid_records=len(entries) - len(broken),
        invalid_records=len(broken),
        broken_links=broken,
        first_error=first_error,
        errors=errors,
    )


def _sinks_from_config(config: EventLogConfig) -> list[Sink]:
    sinks: list[Sink] = []
    if config.enable_console:
        sinks.append(ConsoleSink())
    if config.enable_file and config.file_path:
        sinks.append(FileSink(config.file_path, max_bytes=config.max_file_size))
    return sinks


class EventLog:
    """
    Leveled, hash-chained log held in memory.

    Appends serialize on an internal lock; verification and export work on
    a snapshot. Entries accumulate until :meth:`reset`.
    """

    def __init__(
        self,
        config: EventLogConfig | None = None,
        sinks: Iterable[Sink] | None = None,
        chain_id: str | None = None,
    ) -> None:
        self._config = config or EventLogConfig()
        self._config.validate()
        self._min_level = self._config.min_level
        self._chain_id = chain_id or generate_chain_id("PC")
        self._lock = threading.RLock()
        self._entries: list[LogEntry] = []
        self._last_digest = ZERO_DIGEST
        self._counter = 0
        self._dispatcher = SinkDispatcher(
            _sinks_from_config(self._config) if sinks is None else sinks,
            mode=self._config.sink_mode,
        )
        if not self._config.enable_hash_chain:
            logger.warning(
                "Hash chaining disabled for event log %s; entries will not be linked",
                self._chain_id,
            )

    def __repr__(self) -> str:
        return f"EventLog(chain_id={self._chain_id!r}, entries={len(self._entries)})"

    def __len__(self) -> int:
        return len(self._entries)

    def __enter__(self) -> "EventLog":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def config(self) -> EventLogConfig:
        return self._config

    @property
    def chain_id(self) -> str:
        return self._chain_id

    @property
    def last_digest(self) -> str:
        return self._last_digest

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def entries(self) -> list[LogEntry]:
        with self._lock:
            return list(self._entries)

    def set_min_level(self, level: LogLevel | int | str) -> None:
        self._min_level = LogLevel.coerce(level)

    def log(self, level: LogLevel | int | str, message: str, payload: Any = None) -> LogEntry:
        """
        Append an entry, advance the tail digest and hand the entry to the
        sinks if its level passes the minimum.

        Raises:
            InvalidInputError: for an unknown level, a non-string message or
                a payload with no canonical JSON form
        """
        lvl = LogLevel.coerce(level)
        if not isinstance(message, str):
            raise InvalidInputError("message must be a string", details={"received": type(message).__name__})
        try:
            payload = canonicalize(payload)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"payload cannot be canonicalized: {exc}") from exc

        with self._lock:
            self._counter += 1
            entry_id = sequence_id(f"LOG-{self._chain_id}", self._counter)
            timestamp = utc_now()
            previous = self._last_digest
            entry = LogEntry(
                id=entry_id,
                timestamp=timestamp,
                level=lvl,
                message=message,
                payload=payload,
                previous_digest=previous,
                chain_id=self._chain_id,
                digest=compute_entry_digest(
                    entry_id, timestamp, lvl, message, payload, previous, self._chain_id,
                ),
            )
            self._entries.append(entry)
            if self._config.enable_hash_chain:
                self._last_digest = entry.digest
            if lvl >= self._min_level:
                self._dispatcher.emit(entry)

        return entry

    def debug(self, message: str, payload: Any = None) -> LogEntry:
        return self.log(LogLevel.DEBUG, message, payload)

    def info(self, message: str, payload: Any = None) -> LogEntry:
        return self.log(LogLevel.INFO, message, payload)

    def warn(self, message: str, payload: Any = None) -> LogEntry:
        return self.log(LogLevel.WARN, message, payload)

    def error(self, message: str, payload: Any = None) -> LogEntry:
        return self.log(LogLevel.ERROR, message, payload)

    def proof(self, message: str, payload: Any = None) -> LogEntry:
        return self.log(LogLevel.PROOF, message, payload)

    def validation(self, message: str, payload: Any = None) -> LogEntry:
        return self.log(LogLevel.VALIDATION, message, payload)

    def get_entries_by_level(self, level: LogLevel | int | str) -> list[LogEntry]:
        lvl = LogLevel.coerce(level)
        with self._lock:
            return [e for e in self._entries if e.level is lvl]

    def verify(self) -> ChainVerificationResult:
        with self._lock:
            snapshot = list(self._entries)
            last_digest = self._last_digest
        return replay_entries(snapshot, last_digest)

    def verify_chain(self) -> bool:
        return self.verify().valid

    def merkle_root(self) -> str:
        return merkle_root(e.digest for e in self.entries)

    def flush(self) -> None:
        """Wait until queued entries have reached the sinks."""
        self._dispatcher.flush()

    def reset(self) -> None:
        """Discard every entry and return to the zero sentinel. Meant for tests."""
        with self._lock:
            self._entries = []
            self._last_digest = ZERO_DIGEST
            self._counter = 0

    def close(self) -> None:
        self._dispatcher.close()

    def to_document(self) -> dict[str, Any]:
        with self._lock:
            snapshot = list(self._entries)
            last_digest = self._last_digest
        return {
            "proofChainId": self._chain_id,
            "entryCount": len(snapshot),
            "lastDigest": last_digest,
            "entries": [e.to_dict() for e in snapshot],
            "verified": replay_entries(snapshot, last_digest).valid,
        }

    def export_to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_document(), indent=indent, ensure_ascii=False)

    @classmethod
    def import_from_json(
        cls,
        source: str | bytes | dict[str, Any],
        config: EventLogConfig | None = None,
    ) -> "EventLog":
        """
        Rebuild a log from an export document. The imported log has no sinks
        unless a ``config`` is supplied.

        Raises:
            InvalidInputError: if the document is malformed
        """
        if isinstance(source, dict):
            data = source
        else:
            try:
                data = json.loads(source)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError(f"Export document is not valid JSON: {exc}") from exc
            if not isinstance(data, dict):
                raise InvalidInputError("Export document must be a JSON object")

        for name in ("proofChainId", "lastDigest", "entries"):
            if name not in data:
                raise InvalidInputError(f"Missing required field: {name}", details={"field": name})
        if not isinstance(data["proofChainId"], str) or not data["proofChainId"]:
            raise InvalidInputError("proofChainId must be a non-empty string")
        if not isinstance(data["lastDigest"], str):
            raise InvalidInputError("lastDigest must be a string")
        if not isinstance(data["entries"], list):
            raise InvalidInputError("entries must be an array")

        entries = [LogEntry.from_dict(e, i) for i, e in enumerate(data["entries"])]

        log = cls(config=config, sinks=None if config is not None else [], chain_id=data["proofChainId"])
        log._entries = entries
        log._last_digest = data["lastDigest"]
        log._counter = len(entries)
        return log


__all__ = ["LogEntry", "EventLog", "compute_entry_digest", "replay_entries"]
