"""
Facial expression tracking pipeline.

This package turns a stream of face mesh landmarks into expression metrics:
1. Metric extraction (eye/mouth aspect ratios, brow height, smile, head tilt)
2. Change detection (thresholded frame-to-frame deltas)
3. Session history and summary statistics

Rationale:
- Deterministic geometry only, no emotion classification
- One tracker per session, explicit reset between sessions
- Landmark detection happens upstream; any detector with the MediaPipe
  face mesh topology can feed the tracker
"""

from .errors import (
    LandmarkFrameError,
    InvalidLandmarkFrameError,
    OutOfOrderFrameError,
    DegenerateGeometryError
)
from .landmarks import (
    LandmarkFrame,
    LandmarkIndexTables,
    MEDIAPIPE_INDEX_TABLES,
    as_landmark_array
)
from .metrics import (
    ExpressionMetrics,
    MetricExtractor,
    SidePair,
    extract_metrics
)
from .change_detector import (
    ChangeDetector,
    SignificantChange,
    METRIC_NAMES
)
from .history import HistoryStore
from .summary import SessionSummary, Summarizer, summarize_history
from .config import TrackerConfig, load_tracker_config
from .tracker import FacialExpressionTracker, TrackingResult
from .session import FaceSessionAnalyzer, analyze_landmark_sequence

__all__ = [
    'LandmarkFrameError',
    'InvalidLandmarkFrameError',
    'OutOfOrderFrameError',
    'DegenerateGeometryError',
    'LandmarkFrame',
    'LandmarkIndexTables',
    'MEDIAPIPE_INDEX_TABLES',
    'as_landmark_array',
    'ExpressionMetrics',
    'MetricExtractor',
    'SidePair',
    'extract_metrics',
    'ChangeDetector',
    'SignificantChange',
    'METRIC_NAMES',
    'HistoryStore',
    'SessionSummary',
    'Summarizer',
    'summarize_history',
    'TrackerConfig',
    'load_tracker_config',
    'FacialExpressionTracker',
    'TrackingResult',
    'FaceSessionAnalyzer',
    'analyze_landmark_sequence',
]
