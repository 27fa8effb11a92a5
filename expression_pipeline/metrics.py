"""
Per-frame expression metrics from face mesh landmarks.

Metrics extracted:
1. Eye Aspect Ratio (EAR) per eye - open/closed proxy (~0.2-0.4 open, 0 closed)
2. Mouth Aspect Ratio (MAR) - mouth opening (> 0.5 wide open)
3. Eyebrow height per side - brow-to-eye vertical offset (raised brow proxy)
4. Smile intensity - mouth corner offset from the lip midpoint
5. Head tilt - roll angle of the eye-corner axis in degrees

Engineering decisions:
- Pure geometry: no model, no history, no side effects
- 3D Euclidean distances for the aspect ratios
- Values are reported in the detector's native coordinates. For MediaPipe
  (y grows downward) raised mouth corners give a negative smile intensity.
- A frame whose ratios cannot be computed is rejected as a whole
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np

from .errors import DegenerateGeometryError
from .landmarks import (
    LandmarkFrame,
    LandmarkIndexTables,
    MEDIAPIPE_INDEX_TABLES,
    select,
    validate_frame_length,
)

logger = logging.getLogger(__name__)

# Denominator distances below this are treated as collapsed geometry
MIN_DENOMINATOR = 1e-9


@dataclass
class SidePair:
    """Left/right value pair."""
    left: float
    right: float

    @property
    def mean(self) -> float:
        return (self.left + self.right) / 2.0

    def to_dict(self) -> Dict[str, float]:
        return {'left': self.left, 'right': self.right}


@dataclass
class ExpressionMetrics:
    """
    Expression metrics extracted from a single frame.

    Attributes:
        timestamp: Frame timestamp in milliseconds
        eye_aspect_ratio: EAR per eye (dimensionless)
        mouth_aspect_ratio: MAR (dimensionless)
        eyebrow_height: |mean brow y - mean eye y| per side (normalized units)
        smile_intensity: Mean corner y offset from the lip midpoint (signed)
        head_tilt: Eye axis roll angle in degrees, (-180, 180]
    """
    timestamp: float
    eye_aspect_ratio: SidePair
    mouth_aspect_ratio: float
    eyebrow_height: SidePair
    smile_intensity: float
    head_tilt: float

    def values(self) -> Dict[str, float]:
        """Flat name -> value view of every scalar metric."""
        return {
            'eye_aspect_ratio.left': self.eye_aspect_ratio.left,
            'eye_aspect_ratio.right': self.eye_aspect_ratio.right,
            'mouth_aspect_ratio': self.mouth_aspect_ratio,
            'eyebrow_height.left': self.eyebrow_height.left,
            'eyebrow_height.right': self.eyebrow_height.right,
            'smile_intensity': self.smile_intensity,
            'head_tilt': self.head_tilt,
        }

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.values().values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape consumed downstream."""
        return {
            'timestamp': self.timestamp,
            'eyeAspectRatio': self.eye_aspect_ratio.to_dict(),
            'mouthAspectRatio': self.mouth_aspect_ratio,
            'eyebrowHeight': self.eyebrow_height.to_dict(),
            'smileIntensity': self.smile_intensity,
            'headTilt': self.head_tilt,
        }


def _distance(p: np.ndarray, q: np.ndarray) -> float:
    return float(np.linalg.norm(p - q))


def _checked_denominator(value: float, what: str) -> float:
    if not math.isfinite(value) or value < MIN_DENOMINATOR:
        raise DegenerateGeometryError(f"{what} distance is degenerate ({value!r})")
    return value


def eye_aspect_ratio(eye: np.ndarray) -> float:
    """
    EAR = (|p2 - p6| + |p3 - p5|) / (2 * |p1 - p4|)

    Args:
        eye: (6, 3) eye contour in table order

    Returns:
        Eye aspect ratio
    """
    p1, p2, p3, p4, p5, p6 = eye
    horizontal = _checked_denominator(_distance(p1, p4), "Eye corner")
    return (_distance(p2, p6) + _distance(p3, p5)) / (2.0 * horizontal)


def mouth_aspect_ratio(mouth: np.ndarray) -> float:
    """
    MAR = |p3 - p4| / |p1 - p2|

    Args:
        mouth: (6, 3) mouth points in table order (p5, p6 unused)

    Returns:
        Mouth aspect ratio
    """
    p1, p2, p3, p4 = mouth[:4]
    horizontal = _checked_denominator(_distance(p1, p2), "Mouth corner")
    return _distance(p3, p4) / horizontal


def eyebrow_height(eyebrow: np.ndarray, eye: np.ndarray) -> float:
    """Absolute vertical offset between mean brow y and mean eye y."""
    return float(abs(np.mean(eye[:, 1]) - np.mean(eyebrow[:, 1])))


def smile_intensity(smile: np.ndarray) -> float:
    """
    Mean vertical offset of both mouth corners from the upper/lower lip midpoint.

    Args:
        smile: (4, 3) points: left corner, right corner, upper lip, lower lip
    """
    left_corner, right_corner, upper_lip, lower_lip = smile
    center_y = (upper_lip[1] + lower_lip[1]) / 2.0
    return float(((left_corner[1] - center_y) + (right_corner[1] - center_y)) / 2.0)


def head_tilt(left_eye: np.ndarray, right_eye: np.ndarray) -> float:
    """Roll angle (degrees) of the line from the left to the right eye anchor."""
    angle = math.atan2(right_eye[1] - left_eye[1], right_eye[0] - left_eye[0])
    return math.degrees(angle)


def extract_metrics(
    landmarks: Any,
    timestamp: float,
    index_tables: LandmarkIndexTables = MEDIAPIPE_INDEX_TABLES
) -> ExpressionMetrics:
    """
    Compute all expression metrics for one frame.

    Args:
        landmarks: Face landmarks, anything accepted by as_landmark_array
        timestamp: Frame timestamp in milliseconds
        index_tables: Anatomical index tables

    Returns:
        ExpressionMetrics for the frame

    Raises:
        InvalidLandmarkFrameError: Malformed or too-short frame
        DegenerateGeometryError: Collapsed denominators or non-finite metrics
    """
    frame = LandmarkFrame(landmarks=landmarks, timestamp=timestamp)
    lm = frame.landmarks
    validate_frame_length(lm, index_tables)

    left_eye = select(lm, index_tables.left_eye)
    right_eye = select(lm, index_tables.right_eye)
    left_anchor, right_anchor = index_tables.head_tilt

    # Overflow on huge coordinates shows up as a non-finite metric below
    with np.errstate(over='ignore', invalid='ignore'):
        metrics = ExpressionMetrics(
            timestamp=frame.timestamp,
            eye_aspect_ratio=SidePair(
                left=eye_aspect_ratio(left_eye),
                right=eye_aspect_ratio(right_eye),
            ),
            mouth_aspect_ratio=mouth_aspect_ratio(select(lm, index_tables.mouth)),
            eyebrow_height=SidePair(
                left=eyebrow_height(select(lm, index_tables.left_eyebrow), left_eye),
                right=eyebrow_height(select(lm, index_tables.right_eyebrow), right_eye),
            ),
            smile_intensity=smile_intensity(select(lm, index_tables.smile)),
            head_tilt=head_tilt(lm[left_anchor], lm[right_anchor]),
        )

    if not metrics.is_finite():
        raise DegenerateGeometryError(
            f"Non-finite metrics at t={frame.timestamp}: {metrics.values()}"
        )

    return metrics


class MetricExtractor:
    """
    Stateless extractor bound to a set of index tables.

    Usage:
        extractor = MetricExtractor()
        metrics = extractor.extract(LandmarkFrame(landmarks, timestamp))
    """

    def __init__(self, index_tables: LandmarkIndexTables = MEDIAPIPE_INDEX_TABLES):
        self.index_tables = index_tables

    def extract(self, frame: LandmarkFrame) -> ExpressionMetrics:
        return extract_metrics(frame.landmarks, frame.timestamp, self.index_tables)
