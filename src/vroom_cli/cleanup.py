"""
Resource cleanup registry.

Temporary resources (preview directories, ...) register a dispose callback
here so they are torn down on every exit path: normal completion, errors, and
termination signals. Signal wiring lives in ``install_signal_handlers`` and is
only called from the CLI entry point.
"""
from __future__ import annotations

import logging
import signal
import sys
import threading
from dataclasses import dataclass, field
from itertools import count
from typing import Callable, Iterable, Optional

logger = logging.getLogger(__name__)

DisposeFn = Callable[[], None]


@dataclass
class CleanupEntry:
    id: int
    _fn: DisposeFn
    _disposed: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Run the callback once; later calls are no-ops."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self._fn()


class CleanupRegistry:
    def __init__(self) -> None:
        # Re-entrant: a signal handler runs on the main thread and may flush
        # while that same thread is inside register().
        self._lock = threading.RLock()
        self._entries: dict[int, CleanupEntry] = {}
        self._ids = count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def register(self, dispose: DisposeFn) -> int:
        """Record a dispose callback and return its entry id.

        The same callable registered twice gets two entries.
        """
        with self._lock:
            entry = CleanupEntry(next(self._ids), dispose)
            self._entries[entry.id] = entry
        logger.debug("Registered cleanup entry %d", entry.id)
        return entry.id

    def dispose(self, entry_id: int) -> bool:
        """Dispose a single entry now and drop it. Returns False if it was already gone."""
        with self._lock:
            entry = self._entries.pop(entry_id, None)
        if entry is None:
            return False
        entry.dispose()
        return True

    def flush(self) -> list[BaseException]:
        """Dispose every registered entry.

        All callbacks run even if some fail; failures are logged and returned.
        The registry is empty afterwards, so flushing twice is harmless.
        """
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()

        failures: list[BaseException] = []
        for entry in entries:
            try:
                entry.dispose()
            except Exception as e:
                logger.warning("Cleanup entry %d failed: %s", entry.id, e)
                failures.append(e)
        if entries:
            logger.debug("Flushed %d cleanup entries (%d failed)", len(entries), len(failures))
        return failures


def signal_exit_code(signum: int) -> int:
    return 128 + int(signum)


def install_signal_handlers(
    registry: CleanupRegistry,
    signals: Iterable[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
    on_signal: Optional[Callable[[signal.Signals], None]] = None,
) -> dict[signal.Signals, object]:
    """Flush ``registry`` and exit with 128+signum when one of ``signals`` arrives.

    Returns the previous handlers so callers can restore them.
    """
    previous: dict[signal.Signals, object] = {}

    def _handler(signum: int, frame: object) -> None:
        sig = signal.Signals(signum)
        if on_signal is not None:
            on_signal(sig)
        logger.info("Received %s, cleaning up...", sig.name)
        registry.flush()
        sys.exit(signal_exit_code(signum))

    for sig in signals:
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, _handler)
    return previous


def restore_signal_handlers(previous: dict[signal.Signals, object]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)  # type: ignore[arg-type]
