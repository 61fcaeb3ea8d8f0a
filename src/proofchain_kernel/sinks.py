"""
Output sinks for the event log.

Sinks are presentation only: the in-memory chain is complete before an
entry reaches them, and any exception a sink raises is caught and reported
at the dispatcher boundary so it can never fail a ``log`` call.
"""

import json
import logging
import os
import queue
import sys
import threading
import weakref
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Protocol, TextIO, runtime_checkable

from .canonical import canonical_json, format_timestamp
from .config import LogLevel

if TYPE_CHECKING:
    from .eventlog import LogEntry


logger = logging.getLogger(__name__)

EVENTS_LOGGER = "proofchain_kernel.events"

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.PROOF: logging.INFO,
    LogLevel.VALIDATION: logging.INFO,
}


@runtime_checkable
class Sink(Protocol):
    def write(self, entry: "LogEntry") -> None: ...

    def close(self) -> None: ...


def format_entry(entry: "LogEntry") -> str:
    """``[ts] [LEVEL] message | Data: {...} | Hash: <first 16>...``"""
    data = f" | Data: {json.dumps(entry.payload, ensure_ascii=False)}" if entry.payload is not None else ""
    return (
        f"[{format_timestamp(entry.timestamp)}] [{entry.level.name}] "
        f"{entry.message}{data} | Hash: {entry.digest[:16]}..."
    )


class ConsoleSink:
    """
    Writes formatted entries to a text stream, ``sys.stdout`` by default.

    With ``logger_name`` the text is handed to that stdlib logger instead,
    and where it ends up is decided by the application's logging handlers.
    """

    def __init__(self, stream: TextIO | None = None, logger_name: str | None = None) -> None:
        self._stream = stream
        self._logger = logging.getLogger(logger_name) if logger_name else None
        self._lock = threading.Lock()

    def write(self, entry: "LogEntry") -> None:
        text = format_entry(entry)
        if self._logger is not None:
            self._logger.log(_STDLIB_LEVELS[entry.level], text)
            return
        # resolved per write so a replaced sys.stdout is honoured
        stream = self._stream if self._stream is not None else sys.stdout
        with self._lock:
            stream.write(text + "\n")
            stream.flush()

    def close(self) -> None:
        pass


class FileSink:
    """
    Appends entries as JSON lines, rotating to ``<name>.1`` once the file
    would exceed ``max_bytes``.
    """

    def __init__(self, path: str | os.PathLike, max_bytes: int = 10 * 1024 * 1024) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes
        self._lock = threading.Lock()
        self._handle = None

    def _open(self):
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        return self._handle

    def _rotate_if_needed(self, incoming: int) -> None:
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return
        if size == 0 or size + incoming <= self.max_bytes:
            return
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self.path.replace(self.path.with_name(self.path.name + ".1"))

    def write(self, entry: "LogEntry") -> None:
        line = canonical_json(entry.to_dict()) + "\n"
        with self._lock:
            self._rotate_if_needed(len(line.encode("utf-8")))
            handle = self._open()
            handle.write(line)
            handle.flush()

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None


_STOP = object()


def _deliver(sinks: list[Sink], entry: "LogEntry") -> None:
    for sink in sinks:
        try:
            sink.write(entry)
        except Exception:
            logger.warning(
                "Sink %r failed to write entry %s", sink, entry.id, exc_info=True
            )


def _drain(work: "queue.Queue[object]", sinks: list[Sink]) -> None:
    # Holds no reference to the dispatcher, so an unclosed one can be collected
    while True:
        item = work.get()
        try:
            if item is _STOP:
                return
            _deliver(sinks, item)  # type: ignore[arg-type]
        finally:
            work.task_done()


class SinkDispatcher:
    """
    Delivers entries to sinks.

    In ``"background"`` mode entries are queued for a daemon worker thread,
    so a slow sink never stalls digest computation. The worker starts on the
    first entry and stops on :meth:`close`, or when the dispatcher is
    garbage collected. ``"inline"`` mode writes on the calling thread.
    """

    def __init__(self, sinks: Iterable[Sink] = (), mode: str = "background") -> None:
        self.sinks: list[Sink] = list(sinks)
        self.mode = mode
        self._closed = False
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._worker: threading.Thread | None = None
        self._finalizer: weakref.finalize | None = None
        self._start_lock = threading.Lock()

    def _ensure_worker(self) -> threading.Thread:
        with self._start_lock:
            if self._worker is None:
                self._worker = threading.Thread(
                    target=_drain,
                    args=(self._queue, self.sinks),
                    name="proofchain-sinks",
                    daemon=True,
                )
                self._worker.start()
                self._finalizer = weakref.finalize(self, self._queue.put, _STOP)
            return self._worker

    def emit(self, entry: "LogEntry") -> None:
        if self._closed or not self.sinks:
            return
        if self.mode == "background":
            self._ensure_worker()
            self._queue.put(entry)
        else:
            _deliver(self.sinks, entry)

    def flush(self) -> None:
        """Block until every queued entry has been handed to the sinks."""
        if self._worker is not None:
            self._queue.join()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._start_lock:
            worker, self._worker = self._worker, None
        if worker is not None:
            self._finalizer.detach()
            self._queue.put(_STOP)
            worker.join()
        for sink in self.sinks:
            try:
                sink.close()
            except Exception:
                logger.warning("Failed to close sink %r", sink, exc_info=True)


__all__ = [
    "EVENTS_LOGGER",
    "Sink",
    "ConsoleSink",
    "FileSink",
    "SinkDispatcher",
    "format_entry",
]
