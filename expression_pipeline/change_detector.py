"""
Frame-to-frame change detection on expression metrics.

Each rule compares the newest frame with the immediately preceding one and
fires when the absolute delta exceeds a fixed threshold:

- Eye aspect ratio (per eye): blink / eye opening
- Mouth aspect ratio: speaking, yawning, closing the mouth
- Eyebrow height (either side): surprise or puzzlement, one combined event
- Smile intensity: smile onset / offset
- Head tilt: roll change beyond a fixed number of degrees

There is no smoothing or hysteresis, so jitter around a threshold produces
alternating events. Thresholds are configurable.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .metrics import ExpressionMetrics

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_THRESHOLD = 0.15
DEFAULT_EYE_CLOSED_EAR = 0.2
DEFAULT_MOUTH_OPEN_MAR = 0.5
DEFAULT_HEAD_TILT_THRESHOLD = 5.0

METRIC_LEFT_EAR = 'leftEyeAspectRatio'
METRIC_RIGHT_EAR = 'rightEyeAspectRatio'
METRIC_MAR = 'mouthAspectRatio'
METRIC_EYEBROW = 'eyebrowHeight'
METRIC_SMILE = 'smileIntensity'
METRIC_HEAD_TILT = 'headTilt'

METRIC_NAMES = (
    METRIC_LEFT_EAR,
    METRIC_RIGHT_EAR,
    METRIC_MAR,
    METRIC_EYEBROW,
    METRIC_SMILE,
    METRIC_HEAD_TILT,
)


@dataclass
class SignificantChange:
    """
    A classified frame-to-frame change.

    Attributes:
        timestamp: Timestamp of the frame that triggered the change (ms)
        metric: One of METRIC_NAMES
        value: New metric value
        change_rate: Absolute delta from the previous frame
        description: Human-readable classification
    """
    timestamp: float
    metric: str
    value: float
    change_rate: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'metric': self.metric,
            'value': self.value,
            'changeRate': self.change_rate,
            'description': self.description,
        }


class ChangeDetector:
    """
    Threshold-based change classifier.

    Usage:
        detector = ChangeDetector(change_threshold=0.15)
        changes = detector.detect(current_metrics, previous_metrics)
    """

    def __init__(
        self,
        change_threshold: float = DEFAULT_CHANGE_THRESHOLD,
        eye_closed_ear: float = DEFAULT_EYE_CLOSED_EAR,
        mouth_open_mar: float = DEFAULT_MOUTH_OPEN_MAR,
        head_tilt_threshold: float = DEFAULT_HEAD_TILT_THRESHOLD
    ):
        """
        Initialize change detector.

        Args:
            change_threshold: Delta cutover shared by every metric except head tilt
            eye_closed_ear: EAR below which an eye change is labelled "closed"
            mouth_open_mar: MAR above which a mouth change is labelled "wide open"
            head_tilt_threshold: Head tilt delta cutover in degrees
        """
        self.change_threshold = change_threshold
        self.eye_closed_ear = eye_closed_ear
        self.mouth_open_mar = mouth_open_mar
        self.head_tilt_threshold = head_tilt_threshold

    def detect(
        self,
        current: ExpressionMetrics,
        previous: Optional[ExpressionMetrics]
    ) -> List[SignificantChange]:
        """
        Compare two consecutive frames.

        Args:
            current: Newest metrics
            previous: Metrics of the preceding frame, None on the first frame

        Returns:
            Changes in rule order, all stamped with current.timestamp
        """
        if previous is None:
            return []

        changes: List[SignificantChange] = []
        ts = current.timestamp

        # Eyes (blinks, opening/closing)
        for metric, side, label in (
            (METRIC_LEFT_EAR, 'left', 'left eye'),
            (METRIC_RIGHT_EAR, 'right', 'right eye'),
        ):
            value = getattr(current.eye_aspect_ratio, side)
            delta = abs(value - getattr(previous.eye_aspect_ratio, side))
            if delta > self.change_threshold:
                state = 'closed' if value < self.eye_closed_ear else 'opened'
                changes.append(SignificantChange(ts, metric, value, delta, f"{label} {state}"))

        # Mouth (speaking, yawning)
        mar = current.mouth_aspect_ratio
        mar_delta = abs(mar - previous.mouth_aspect_ratio)
        if mar_delta > self.change_threshold:
            state = 'wide open' if mar > self.mouth_open_mar else 'closed'
            changes.append(SignificantChange(ts, METRIC_MAR, mar, mar_delta, f"mouth {state}"))

        # Eyebrows (surprise, puzzlement)
        left_delta = abs(current.eyebrow_height.left - previous.eyebrow_height.left)
        right_delta = abs(current.eyebrow_height.right - previous.eyebrow_height.right)
        if left_delta > self.change_threshold or right_delta > self.change_threshold:
            changes.append(SignificantChange(
                ts,
                METRIC_EYEBROW,
                current.eyebrow_height.mean,
                (left_delta + right_delta) / 2.0,
                "brow position change (surprise or puzzlement)"
            ))

        # Smile
        smile = current.smile_intensity
        smile_delta = abs(smile - previous.smile_intensity)
        if smile_delta > self.change_threshold:
            label = 'smile start' if smile > previous.smile_intensity else 'smile stop'
            changes.append(SignificantChange(ts, METRIC_SMILE, smile, smile_delta, label))

        # Head roll, own threshold in degrees
        tilt = current.head_tilt
        tilt_delta = abs(tilt - previous.head_tilt)
        if tilt_delta > self.head_tilt_threshold:
            changes.append(SignificantChange(
                ts, METRIC_HEAD_TILT, tilt, tilt_delta, f"head tilt change ({tilt:.1f} deg)"
            ))

        for change in changes:
            logger.debug(
                f"t={ts}: {change.metric} {change.description} "
                f"(value={change.value:.3f}, delta={change.change_rate:.3f})"
            )

        return changes
