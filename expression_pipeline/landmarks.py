"""
Landmark frames and the anatomical index tables used to read them.

Index tables follow the MediaPipe Face Mesh / Face Landmarker topology
(468 points, 478 with refined iris landmarks). Only a handful of points
feed the expression metrics; each table is an ordered tuple because the
metric formulas depend on position:

- Eye (6 points): p1, p4 are the horizontal eye corners,
  (p2, p6) and (p3, p5) are the upper/lower vertical pairs.
- Mouth (6 points): p1, p2 are the mouth corners, (p3, p4) is the
  vertical lip pair, p5, p6 are the inner corners (selected but not used
  by the ratio).
- Eyebrow (5 points): averaged, order is not load-bearing.
- Smile (4 points): left corner, right corner, upper lip, lower lip.
- Head tilt: one anchor point per eye (outer corners).

Coordinates are normalized image space as delivered by the detector:
x grows to the right, y grows downward, z is a relative depth offset.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidLandmarkFrameError

logger = logging.getLogger(__name__)

# Number of points in a plain MediaPipe face mesh (iris refinement adds 10)
FACE_MESH_LANDMARKS = 468
FACE_MESH_LANDMARKS_REFINED = 478

LEFT_EYE_INDICES = (33, 160, 158, 133, 153, 144)
RIGHT_EYE_INDICES = (362, 385, 387, 263, 373, 380)
MOUTH_INDICES = (61, 291, 0, 17, 78, 308)
LEFT_EYEBROW_INDICES = (70, 63, 105, 66, 107)
RIGHT_EYEBROW_INDICES = (336, 296, 334, 293, 300)
SMILE_INDICES = (61, 291, 13, 14)

# Outer eye corners used as the head roll axis
HEAD_TILT_LEFT_EYE = 33
HEAD_TILT_RIGHT_EYE = 263

_TABLE_SIZES = {
    'left_eye': 6,
    'right_eye': 6,
    'mouth': 6,
    'left_eyebrow': 5,
    'right_eyebrow': 5,
    'smile': 4,
}


@dataclass(frozen=True)
class LandmarkIndexTables:
    """
    Immutable set of index tables selecting the landmarks behind each metric.

    Attributes:
        left_eye: Left eye contour (p1..p6)
        right_eye: Right eye contour (p1..p6)
        mouth: Mouth corners, vertical lip pair, inner corners
        left_eyebrow: Left eyebrow points
        right_eyebrow: Right eyebrow points
        smile: Left corner, right corner, upper lip, lower lip
        head_tilt: (left eye anchor, right eye anchor)
    """
    left_eye: Tuple[int, ...] = LEFT_EYE_INDICES
    right_eye: Tuple[int, ...] = RIGHT_EYE_INDICES
    mouth: Tuple[int, ...] = MOUTH_INDICES
    left_eyebrow: Tuple[int, ...] = LEFT_EYEBROW_INDICES
    right_eyebrow: Tuple[int, ...] = RIGHT_EYEBROW_INDICES
    smile: Tuple[int, ...] = SMILE_INDICES
    head_tilt: Tuple[int, int] = (HEAD_TILT_LEFT_EYE, HEAD_TILT_RIGHT_EYE)

    def __post_init__(self):
        for name, size in _TABLE_SIZES.items():
            table = getattr(self, name)
            if len(table) != size:
                raise ValueError(
                    f"Index table '{name}' needs {size} indices, got {len(table)}"
                )
        if len(self.head_tilt) != 2:
            raise ValueError("Index table 'head_tilt' needs exactly 2 indices")
        for index in self.all_indices():
            if index < 0:
                raise ValueError(f"Negative landmark index: {index}")

    def all_indices(self) -> Tuple[int, ...]:
        return (
            self.left_eye + self.right_eye + self.mouth
            + self.left_eyebrow + self.right_eyebrow + self.smile
            + tuple(self.head_tilt)
        )

    @property
    def max_index(self) -> int:
        return max(self.all_indices())

    @property
    def min_landmarks(self) -> int:
        """Smallest frame length that can be indexed by every table."""
        return self.max_index + 1

    @classmethod
    def from_dict(cls, tables: Optional[Dict[str, Sequence[int]]]) -> 'LandmarkIndexTables':
        """Build tables from a config mapping; missing keys keep the defaults."""
        if not tables:
            return cls()
        unknown = set(tables) - set(_TABLE_SIZES) - {'head_tilt'}
        if unknown:
            raise ValueError(f"Unknown landmark tables: {sorted(unknown)}")
        return cls(**{name: tuple(int(i) for i in indices) for name, indices in tables.items()})


MEDIAPIPE_INDEX_TABLES = LandmarkIndexTables()


@dataclass
class LandmarkFrame:
    """
    One detector output handed to the tracker.

    Attributes:
        landmarks: (N, 3) array of normalized (x, y, z) points
        timestamp: Capture time in milliseconds
    """
    landmarks: np.ndarray
    timestamp: float

    def __post_init__(self):
        self.landmarks = as_landmark_array(self.landmarks)
        self.timestamp = check_timestamp(self.timestamp)

    def __len__(self) -> int:
        return len(self.landmarks)


def check_timestamp(timestamp: Any) -> float:
    """Coerce a frame timestamp to a finite float or raise InvalidLandmarkFrameError."""
    try:
        value = float(timestamp)
    except (TypeError, ValueError):
        raise InvalidLandmarkFrameError(f"Timestamp is not a number: {timestamp!r}")
    if not np.isfinite(value):
        raise InvalidLandmarkFrameError(f"Timestamp is not finite: {timestamp!r}")
    return value


def as_landmark_array(landmarks: Any) -> np.ndarray:
    """
    Coerce detector output into a float (N, 3) array.

    Accepts (N, 3) or (N, 2) arrays / nested sequences, or a sequence of
    objects with ``x``, ``y`` and optional ``z`` attributes (MediaPipe
    NormalizedLandmark). Missing depth is filled with 0.

    Raises:
        InvalidLandmarkFrameError: If the input cannot be read as points
    """
    if landmarks is None:
        raise InvalidLandmarkFrameError("No landmarks supplied")

    if hasattr(landmarks, 'landmark'):
        # NormalizedLandmarkList from the legacy solutions API
        landmarks = landmarks.landmark

    if isinstance(landmarks, np.ndarray):
        points = landmarks
    else:
        landmarks = list(landmarks)
        if landmarks and hasattr(landmarks[0], 'x'):
            points = [
                (lm.x, lm.y, getattr(lm, 'z', 0.0) or 0.0) for lm in landmarks
            ]
        else:
            points = landmarks

    try:
        arr = np.asarray(points, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidLandmarkFrameError(f"Landmarks are not numeric points: {e}")

    if arr.ndim != 2 or arr.shape[1] not in (2, 3):
        raise InvalidLandmarkFrameError(
            f"Expected landmarks of shape (N, 3) or (N, 2), got {arr.shape}"
        )

    if arr.shape[1] == 2:
        arr = np.hstack([arr, np.zeros((arr.shape[0], 1))])

    if not np.all(np.isfinite(arr)):
        raise InvalidLandmarkFrameError("Landmarks contain non-finite coordinates")

    return arr


def validate_frame_length(
    landmarks: np.ndarray,
    index_tables: LandmarkIndexTables = MEDIAPIPE_INDEX_TABLES
) -> None:
    """Raise InvalidLandmarkFrameError when a table index falls outside the frame."""
    required = index_tables.min_landmarks
    if len(landmarks) < required:
        raise InvalidLandmarkFrameError(
            f"Frame has {len(landmarks)} landmarks, index tables need at least {required}"
        )
    if len(landmarks) < FACE_MESH_LANDMARKS:
        logger.debug(
            f"Frame has {len(landmarks)} landmarks (< {FACE_MESH_LANDMARKS}); "
            f"accepted because tables only reach index {index_tables.max_index}"
        )


def select(landmarks: np.ndarray, indices: Sequence[int]) -> np.ndarray:
    """Pick the rows named by an index table, preserving table order."""
    return landmarks[list(indices)]
