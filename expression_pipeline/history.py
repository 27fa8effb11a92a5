"""Session history: metrics time series and detected changes."""

import logging
from collections import deque
from typing import Deque, Iterable, List, Optional

from .change_detector import SignificantChange
from .errors import OutOfOrderFrameError
from .metrics import ExpressionMetrics

logger = logging.getLogger(__name__)


class HistoryStore:
    """
    Append-only store for one tracking session.

    Unbounded by default. With max_frames set, only the newest frames are
    kept and changes stamped before the oldest retained frame are evicted
    alongside them.

    Usage:
        store = HistoryStore()
        store.append_metrics(metrics)
        store.extend_changes(changes)
    """

    def __init__(self, max_frames: Optional[int] = None):
        if max_frames is not None and max_frames < 2:
            raise ValueError(f"max_frames must be at least 2, got {max_frames}")
        self.max_frames = max_frames
        self._metrics: Deque[ExpressionMetrics] = deque(maxlen=max_frames)
        self._changes: Deque[SignificantChange] = deque()

    @property
    def metrics_history(self) -> List[ExpressionMetrics]:
        return list(self._metrics)

    @property
    def significant_changes(self) -> List[SignificantChange]:
        return list(self._changes)

    @property
    def bounded(self) -> bool:
        return self.max_frames is not None

    def __len__(self) -> int:
        return len(self._metrics)

    def append_metrics(self, metrics: ExpressionMetrics) -> None:
        """
        Append one frame of metrics.

        Raises:
            OutOfOrderFrameError: If metrics.timestamp precedes the last frame
        """
        if self._metrics and metrics.timestamp < self._metrics[-1].timestamp:
            raise OutOfOrderFrameError(
                f"Frame timestamp {metrics.timestamp} is older than "
                f"last recorded {self._metrics[-1].timestamp}"
            )
        self._metrics.append(metrics)
        if self.bounded:
            self._evict_orphaned_changes()

    def append_change(self, change: SignificantChange) -> None:
        if not self._metrics or change.timestamp < self._metrics[0].timestamp:
            raise ValueError(
                f"Change at t={change.timestamp} has no matching frame in history"
            )
        self._changes.append(change)

    def extend_changes(self, changes: Iterable[SignificantChange]) -> None:
        for change in changes:
            self.append_change(change)

    def latest(self, n: int = 1) -> List[ExpressionMetrics]:
        """Return up to the n most recent frames, oldest first."""
        if n <= 0:
            return []
        return list(self._metrics)[-n:]

    def previous_metrics(self) -> Optional[ExpressionMetrics]:
        """Frame preceding the newest one, None with fewer than two frames."""
        if len(self._metrics) < 2:
            return None
        return self._metrics[-2]

    def reset(self) -> None:
        self._metrics.clear()
        self._changes.clear()

    def _evict_orphaned_changes(self) -> None:
        oldest = self._metrics[0].timestamp
        evicted = 0
        while self._changes and self._changes[0].timestamp < oldest:
            self._changes.popleft()
            evicted += 1
        if evicted:
            logger.debug(f"Evicted {evicted} changes older than t={oldest}")
