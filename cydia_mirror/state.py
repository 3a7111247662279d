"""
Run handle shared between the mirror engine and whoever is watching it.

The engine is the only writer. A front end (or a signal handler) may read a
snapshot at any time from another thread, and may request pause, resume or
cancellation.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Tuple

PHASE_IDLE = "Idle"
PHASE_VALIDATING = "Validating input…"
PHASE_SEARCHING = "Searching repo metadata files…"
PHASE_PARSING = "Parsing Packages file…"
PHASE_DOWNLOADING = "Downloading .deb files…"
PHASE_CRAWLING = "Crawling repository files…"
PHASE_COMPLETE = "Download complete"
PHASE_CANCELLED = "Download cancelled"
PHASE_ERROR = "Error"


@dataclass(frozen=True)
class DownloadFailure:
    path: str
    error: str

    def __str__(self):
        return f"{self.path}: {self.error}"


@dataclass(frozen=True)
class RunSnapshot:
    files_total: int
    files_downloaded: int
    phase: str
    cancelled: bool
    paused: bool
    failures: Tuple[DownloadFailure, ...]
    log_text: str


class RunHandle:
    """Progress counters, failure list and control flags of one mirror run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        # set while running, cleared while paused
        self._running = threading.Event()
        self._running.set()
        self._files_total = 0
        self._files_downloaded = 0
        self._failures: List[DownloadFailure] = []
        self._log_lines: List[str] = []
        self._phase = PHASE_IDLE

    # -- control ---------------------------------------------------------

    def cancel(self):
        """Request cancellation. Sticky: there is no way to undo it."""
        self._cancel.set()
        # wake up a paused run so it can notice
        self._running.set()

    @property
    def cancelled(self):
        return self._cancel.is_set()

    def pause(self):
        if not self.cancelled:
            self._running.clear()

    def resume(self):
        self._running.set()

    @property
    def paused(self):
        return not self._running.is_set()

    def checkpoint(self):
        """Block while paused; return False once cancellation was requested."""
        self._running.wait()
        return not self.cancelled

    # -- progress --------------------------------------------------------

    def set_phase(self, phase):
        with self._lock:
            self._phase = phase

    @property
    def phase(self):
        with self._lock:
            return self._phase

    def add_total(self, count=1):
        with self._lock:
            self._files_total += count

    def mark_done(self, count=1):
        with self._lock:
            self._files_downloaded += count

    @property
    def files_total(self):
        with self._lock:
            return self._files_total

    @property
    def files_downloaded(self):
        with self._lock:
            return self._files_downloaded

    def add_failure(self, path, error):
        failure = DownloadFailure(path, str(error))
        with self._lock:
            self._failures.append(failure)
        return failure

    @property
    def failures(self):
        with self._lock:
            return list(self._failures)

    def append_log(self, line):
        with self._lock:
            self._log_lines.append(line)

    @property
    def log_text(self):
        with self._lock:
            return "\n".join(self._log_lines)

    def snapshot(self):
        with self._lock:
            return RunSnapshot(
                files_total=self._files_total,
                files_downloaded=self._files_downloaded,
                phase=self._phase,
                cancelled=self._cancel.is_set(),
                paused=not self._running.is_set(),
                failures=tuple(self._failures),
                log_text="\n".join(self._log_lines),
            )


class RunLogHandler(logging.Handler):
    """Logging handler that collects formatted records into a RunHandle."""

    def __init__(self, handle, level=logging.INFO):
        super().__init__(level)
        self.run_handle = handle
        self.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    def emit(self, record):
        try:
            self.run_handle.append_log(self.format(record))
        except Exception:
            self.handleError(record)
