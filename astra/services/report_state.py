"""In-process state shared by the report store and the execution trigger."""

import threading
from typing import Dict, FrozenSet, List, Optional, Set


class RunTracker:
    """Running report ids and the error banner for one user.

    Lives in process memory only. It guards against the same report running
    twice inside one process and is lost on restart.
    """

    def __init__(self):
        self.error: Optional[str] = None
        self._running: Set[str] = set()
        self._lock = threading.Lock()

    def try_start(self, report_id: str) -> bool:
        """Add report_id to the running-set unless it is already there."""
        with self._lock:
            if report_id in self._running:
                return False
            self._running.add(report_id)
            return True

    def finish(self, report_id: str) -> None:
        with self._lock:
            self._running.discard(report_id)

    def is_running(self, report_id: str) -> bool:
        with self._lock:
            return report_id in self._running

    @property
    def running(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._running)


class ReportsState:
    """Per-user view of reports, run history and in-flight executions.

    Loaded rows are held per instance, one instance per request or task run.
    The running-set and error banner come from a RunTracker that outlives it.
    """

    def __init__(self, user_id: Optional[str] = None, tracker: Optional[RunTracker] = None):
        self.user_id = user_id
        self.tracker = tracker or RunTracker()
        self.reports: List = []
        self.templates: List = []
        self.messages: List = []
        self.is_loading = False

    def try_start(self, report_id: str) -> bool:
        return self.tracker.try_start(report_id)

    def finish(self, report_id: str) -> None:
        self.tracker.finish(report_id)

    def is_running(self, report_id: str) -> bool:
        return self.tracker.is_running(report_id)

    @property
    def running(self) -> FrozenSet[str]:
        return self.tracker.running

    @property
    def error(self) -> Optional[str]:
        return self.tracker.error

    def set_error(self, message: str) -> None:
        self.tracker.error = message

    def clear_error(self) -> None:
        self.tracker.error = None


class ReportStateRegistry:
    """Keeps one RunTracker per user for the lifetime of the process.

    Each get() returns a fresh ReportsState, so ORM rows loaded by one request
    are never kept after it.
    """

    def __init__(self):
        self._trackers: Dict[str, RunTracker] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> ReportsState:
        with self._lock:
            tracker = self._trackers.get(user_id)
            if tracker is None:
                tracker = RunTracker()
                self._trackers[user_id] = tracker
        return ReportsState(user_id=user_id, tracker=tracker)

    def reset(self) -> None:
        with self._lock:
            self._trackers.clear()


# Global registry instance
state_registry = ReportStateRegistry()
