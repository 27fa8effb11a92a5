"""
Caller-side session driver for a landmark source.

The tracker itself never enforces the session budget. FaceSessionAnalyzer
sits between a landmark detector loop (webcam or decoded video) and the
tracker: it starts the clock on the first frame, stops feeding frames once
the budget is spent, and turns bad frames and "no face" ticks into skipped
frames so one bad frame never ends a session.
"""

import logging
from typing import Any, Iterable, Optional

from .config import TrackerConfig
from .errors import LandmarkFrameError
from .landmarks import check_timestamp
from .metrics import ExpressionMetrics
from .tracker import FacialExpressionTracker, TrackingResult

logger = logging.getLogger(__name__)


class FaceSessionAnalyzer:
    """
    Feed detector output into a tracker within a time budget.

    Usage:
        analyzer = FaceSessionAnalyzer(max_duration_minutes=2)
        for landmarks, timestamp in detector_output:
            analyzer.analyze_frame(landmarks, timestamp)
            if analyzer.is_expired:
                break
        result = analyzer.finalize()
        analyzer.cleanup()
    """

    def __init__(
        self,
        max_duration_minutes: Optional[float] = None,
        config: Optional[TrackerConfig] = None
    ):
        self.tracker = FacialExpressionTracker(
            max_duration_minutes=max_duration_minutes,
            config=config,
        )
        self.start_time: Optional[float] = None
        self.is_expired = False
        self.skipped_frames = 0

    @property
    def max_duration_ms(self) -> float:
        return self.tracker.max_duration_ms

    def elapsed(self, timestamp: float) -> float:
        if self.start_time is None:
            return 0.0
        return timestamp - self.start_time

    def analyze_frame(self, landmarks: Any, timestamp: Any) -> Optional[ExpressionMetrics]:
        """
        Analyze one detector result.

        A tick whose timestamp is not a finite number is skipped before it
        can start the session clock or be compared against the budget.

        Args:
            landmarks: Landmarks of the primary face, None if no face was found
            timestamp: Frame timestamp in milliseconds

        Returns:
            Metrics for the frame, None if nothing was recorded this tick
        """
        try:
            timestamp = check_timestamp(timestamp)
        except LandmarkFrameError as e:
            logger.warning(f"Skipping tick: {e}")
            self.skipped_frames += 1
            return None

        if self.start_time is None:
            self.start_time = timestamp

        if self.elapsed(timestamp) > self.max_duration_ms:
            if not self.is_expired:
                logger.info(
                    f"Session budget of {self.max_duration_ms:.0f} ms reached at t={timestamp}"
                )
                self.is_expired = True
            return None

        if landmarks is None:
            logger.debug(f"No face at t={timestamp}")
            self.skipped_frames += 1
            return None

        try:
            metrics = self.tracker.process_frame(landmarks, timestamp)
        except LandmarkFrameError as e:
            logger.warning(f"Skipping frame at t={timestamp}: {e}")
            self.skipped_frames += 1
            return None

        if metrics is None:
            self.skipped_frames += 1

        return metrics

    def finalize(self) -> TrackingResult:
        return self.tracker.finalize()

    def cleanup(self) -> None:
        """Reset the tracker and the session clock."""
        self.tracker.reset()
        self.start_time = None
        self.is_expired = False
        self.skipped_frames = 0


def analyze_landmark_sequence(
    landmarks_sequence: Iterable[Any],
    timestamps: Iterable[float],
    config: Optional[TrackerConfig] = None
) -> TrackingResult:
    """
    Convenience function to track a whole sequence of landmark frames.

    Args:
        landmarks_sequence: Landmarks per frame (None where no face was found)
        timestamps: Frame timestamps in milliseconds, one per frame
        config: Tracker configuration

    Returns:
        TrackingResult for the frames that fit within the session budget

    Raises:
        ValueError: If the two inputs differ in length
    """
    landmarks_sequence = list(landmarks_sequence)
    timestamps = list(timestamps)
    if len(landmarks_sequence) != len(timestamps):
        raise ValueError(
            f"Got {len(landmarks_sequence)} landmark frames but {len(timestamps)} timestamps"
        )

    analyzer = FaceSessionAnalyzer(config=config)

    for landmarks, timestamp in zip(landmarks_sequence, timestamps):
        analyzer.analyze_frame(landmarks, timestamp)
        if analyzer.is_expired:
            break

    result = analyzer.finalize()

    logger.info(
        f"Analyzed landmark sequence: {len(result.metrics_history)} frames recorded, "
        f"{analyzer.skipped_frames} skipped"
    )

    return result
