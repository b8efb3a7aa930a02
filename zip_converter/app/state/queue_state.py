from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal


class QueueState(QObject):
    """Bindable state for the job queue.

    The queue primarily communicates via backend.taskEvent(dict), but a small
    amount of bindable state is practical for enabling/disabling UI controls
    (cancel button, clear button, progress bar).
    """

    runningChanged = Signal(bool)
    percentChanged = Signal(int)
    pendingCountChanged = Signal(int)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._running = False
        self._percent = 0
        self._pending_count = 0

    def _get_running(self) -> bool:
        return bool(self._running)

    running = Property(bool, _get_running, notify=runningChanged)  # type: ignore[arg-type]

    def _get_percent(self) -> int:
        return int(self._percent)

    percent = Property(int, _get_percent, notify=percentChanged)  # type: ignore[arg-type]

    def _get_pending_count(self) -> int:
        return int(self._pending_count)

    pendingCount = Property(int, _get_pending_count, notify=pendingCountChanged)  # type: ignore[arg-type]

    def _set_running(self, running: bool) -> None:
        v = bool(running)
        if v == self._running:
            return
        self._running = v
        self.runningChanged.emit(v)

    def _set_percent(self, percent: int) -> None:
        p = int(max(0, min(100, int(percent))))
        if p == self._percent:
            return
        self._percent = p
        self.percentChanged.emit(p)

    def _set_pending_count(self, count: int) -> None:
        c = max(0, int(count))
        if c == self._pending_count:
            return
        self._pending_count = c
        self.pendingCountChanged.emit(c)
