"""
Facial expression tracking session.

Ties together metric extraction, history and change detection:

    landmarks -> extract_metrics -> HistoryStore.append_metrics
              -> ChangeDetector.detect(newest, previous) -> HistoryStore.extend_changes

One tracker instance holds one session. Calls must be serial; the history
is not safe for concurrent writers.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from .change_detector import ChangeDetector, SignificantChange
from .config import TrackerConfig
from .errors import DegenerateGeometryError
from .history import HistoryStore
from .metrics import ExpressionMetrics, extract_metrics
from .summary import SessionSummary, summarize_history

logger = logging.getLogger(__name__)


@dataclass
class TrackingResult:
    """
    Everything a session produced.

    Attributes:
        metrics_history: Per-frame metrics in arrival order
        significant_changes: Detected changes in arrival order
        summary: Aggregate statistics
    """
    metrics_history: List[ExpressionMetrics]
    significant_changes: List[SignificantChange]
    summary: SessionSummary

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable bundle."""
        return {
            'metricsHistory': [m.to_dict() for m in self.metrics_history],
            'significantChanges': [c.to_dict() for c in self.significant_changes],
            'summary': self.summary.to_dict(),
        }


class FacialExpressionTracker:
    """
    Session-scoped expression tracker.

    Usage:
        tracker = FacialExpressionTracker(max_duration_minutes=2)
        for landmarks, timestamp in stream:
            tracker.process_frame(landmarks, timestamp)
        result = tracker.finalize()
        tracker.reset()
    """

    def __init__(
        self,
        max_duration_minutes: Optional[float] = None,
        change_threshold: Optional[float] = None,
        config: Optional[TrackerConfig] = None
    ):
        """
        Initialize tracker.

        Args:
            max_duration_minutes: Session budget (overrides config)
            change_threshold: Shared change threshold (overrides config)
            config: Full configuration, defaults to TrackerConfig()
        """
        config = config or TrackerConfig()
        if max_duration_minutes is not None:
            config = replace(config, max_duration_minutes=max_duration_minutes)
        if change_threshold is not None:
            config = replace(config, change_threshold=change_threshold)

        errors = config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {errors}")

        self.config = config
        self.index_tables = config.index_tables
        self.detector = ChangeDetector(
            change_threshold=config.change_threshold,
            eye_closed_ear=config.eye_closed_ear,
            mouth_open_mar=config.mouth_open_mar,
            head_tilt_threshold=config.head_tilt_degrees,
        )
        self.history = HistoryStore(max_frames=config.max_frames)
        self.dropped_frames = 0

        logger.info(
            f"Expression tracker initialized: threshold={config.change_threshold}, "
            f"max_duration={config.max_duration_minutes}min"
        )

    @property
    def change_threshold(self) -> float:
        return self.config.change_threshold

    @property
    def max_duration_ms(self) -> float:
        return self.config.max_duration_ms

    @property
    def frame_count(self) -> int:
        return len(self.history)

    @property
    def metrics_history(self) -> List[ExpressionMetrics]:
        return self.history.metrics_history

    @property
    def significant_changes(self) -> List[SignificantChange]:
        return self.history.significant_changes

    def process_frame(self, landmarks: Any, timestamp: float) -> Optional[ExpressionMetrics]:
        """
        Extract metrics for one frame, record them and detect changes.

        Args:
            landmarks: Face landmarks for the frame
            timestamp: Frame timestamp in milliseconds

        Returns:
            The frame's metrics, or None if the frame was dropped because
            its geometry was degenerate

        Raises:
            InvalidLandmarkFrameError: Malformed, too-short or out-of-order frame
        """
        try:
            metrics = extract_metrics(landmarks, timestamp, self.index_tables)
        except DegenerateGeometryError as e:
            self.dropped_frames += 1
            logger.warning(f"Dropping frame at t={timestamp}: {e}")
            return None

        self.history.append_metrics(metrics)

        changes = self.detector.detect(metrics, self.history.previous_metrics())
        self.history.extend_changes(changes)

        logger.debug(
            f"Frame t={timestamp}: EAR=({metrics.eye_aspect_ratio.left:.3f}, "
            f"{metrics.eye_aspect_ratio.right:.3f}), MAR={metrics.mouth_aspect_ratio:.3f}, "
            f"{len(changes)} changes"
        )

        return metrics

    # Name used by the landmark-source drivers
    extract_metrics = process_frame

    def summarize(self) -> SessionSummary:
        return summarize_history(self.history)

    def finalize(self) -> TrackingResult:
        """Return the accumulated session; state is kept until reset()."""
        result = TrackingResult(
            metrics_history=self.history.metrics_history,
            significant_changes=self.history.significant_changes,
            summary=self.summarize(),
        )

        logger.info(
            f"Session finalized: {len(result.metrics_history)} frames, "
            f"{result.summary.change_count} changes, {self.dropped_frames} dropped, "
            f"{result.summary.total_duration:.0f} ms"
        )

        return result

    def reset(self) -> None:
        """Clear the session so the tracker can be reused."""
        self.history.reset()
        self.dropped_frames = 0
        logger.debug("Expression tracker reset")
