"""
Session summary statistics.

Only the eye aspect ratios, mouth aspect ratio and smile intensity are
averaged. Eyebrow height and head tilt are left out of the averages.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from .history import HistoryStore

logger = logging.getLogger(__name__)


@dataclass
class SessionSummary:
    """
    Aggregate statistics for a tracking session.

    Attributes:
        total_duration: Last minus first frame timestamp (ms)
        average_metrics: Mean metric values, empty for an empty session
        change_count: Number of significant changes recorded
    """
    total_duration: float = 0.0
    average_metrics: Dict[str, Any] = field(default_factory=dict)
    change_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalDuration': self.total_duration,
            'averageMetrics': self.average_metrics,
            'changeCount': self.change_count,
        }


def summarize_history(store: HistoryStore) -> SessionSummary:
    """
    Summarize the frames and changes held by a history store.

    Args:
        store: Session history

    Returns:
        SessionSummary; average_metrics uses the camelCase output keys
        (eyeAspectRatio.left/right, mouthAspectRatio, smileIntensity)
    """
    history = store.metrics_history
    change_count = len(store.significant_changes)

    if not history:
        return SessionSummary(total_duration=0.0, average_metrics={}, change_count=change_count)

    total_duration = history[-1].timestamp - history[0].timestamp

    values = np.array([
        (
            m.eye_aspect_ratio.left,
            m.eye_aspect_ratio.right,
            m.mouth_aspect_ratio,
            m.smile_intensity,
        )
        for m in history
    ])
    left_ear, right_ear, mar, smile = (float(v) for v in values.mean(axis=0))

    summary = SessionSummary(
        total_duration=total_duration,
        average_metrics={
            'eyeAspectRatio': {'left': left_ear, 'right': right_ear},
            'mouthAspectRatio': mar,
            'smileIntensity': smile,
        },
        change_count=change_count,
    )

    logger.debug(
        f"Summarized {len(history)} frames over {total_duration:.0f} ms, "
        f"{change_count} changes"
    )

    return summary


class Summarizer:
    """Summarizer bound to one history store."""

    def __init__(self, store: HistoryStore):
        self.store = store

    def summarize(self) -> SessionSummary:
        return summarize_history(self.store)
