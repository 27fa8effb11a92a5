"""Tracker configuration: defaults, YAML loading and validation."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from utils.config_loader import DEFAULT_CONFIG_PATH, get_nested_config, load_config

from .change_detector import (
    DEFAULT_CHANGE_THRESHOLD,
    DEFAULT_EYE_CLOSED_EAR,
    DEFAULT_HEAD_TILT_THRESHOLD,
    DEFAULT_MOUTH_OPEN_MAR,
)
from .landmarks import LandmarkIndexTables, MEDIAPIPE_INDEX_TABLES

logger = logging.getLogger(__name__)

DEFAULT_MAX_DURATION_MINUTES = 2.0


@dataclass
class TrackerConfig:
    """
    Settings for one tracking session.

    Attributes:
        max_duration_minutes: Session time budget enforced by the caller
        change_threshold: Shared delta cutover for change detection
        eye_closed_ear: EAR below which an eye is reported closed
        mouth_open_mar: MAR above which the mouth is reported wide open
        head_tilt_degrees: Head tilt delta cutover in degrees
        max_frames: Ring-buffer size for the history, None for unbounded
        index_tables: Anatomical index tables
    """
    max_duration_minutes: float = DEFAULT_MAX_DURATION_MINUTES
    change_threshold: float = DEFAULT_CHANGE_THRESHOLD
    eye_closed_ear: float = DEFAULT_EYE_CLOSED_EAR
    mouth_open_mar: float = DEFAULT_MOUTH_OPEN_MAR
    head_tilt_degrees: float = DEFAULT_HEAD_TILT_THRESHOLD
    max_frames: Optional[int] = None
    index_tables: LandmarkIndexTables = field(default_factory=lambda: MEDIAPIPE_INDEX_TABLES)

    @property
    def max_duration_ms(self) -> float:
        return self.max_duration_minutes * 60 * 1000

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the configuration is usable."""
        errors = []
        if self.max_duration_minutes <= 0:
            errors.append("max_duration_minutes must be positive")
        if self.change_threshold < 0:
            errors.append("change_threshold must be non-negative")
        if self.head_tilt_degrees < 0:
            errors.append("head_tilt_degrees must be non-negative")
        if self.eye_closed_ear < 0:
            errors.append("eye_closed_ear must be non-negative")
        if self.mouth_open_mar < 0:
            errors.append("mouth_open_mar must be non-negative")
        if self.max_frames is not None and self.max_frames < 2:
            errors.append("max_frames must be at least 2 or null")
        return errors

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> 'TrackerConfig':
        """
        Build from a configuration mapping (see configs/expression_tracker.yaml).

        Missing keys fall back to the defaults.
        """
        config = config or {}
        defaults = cls()
        max_frames = get_nested_config(config, 'history.max_frames', default=None)

        return cls(
            max_duration_minutes=float(get_nested_config(
                config, 'tracker.max_duration_minutes', defaults.max_duration_minutes)),
            change_threshold=float(get_nested_config(
                config, 'tracker.change_threshold', defaults.change_threshold)),
            eye_closed_ear=float(get_nested_config(
                config, 'thresholds.eye_closed_ear', defaults.eye_closed_ear)),
            mouth_open_mar=float(get_nested_config(
                config, 'thresholds.mouth_open_mar', defaults.mouth_open_mar)),
            head_tilt_degrees=float(get_nested_config(
                config, 'thresholds.head_tilt_degrees', defaults.head_tilt_degrees)),
            max_frames=int(max_frames) if max_frames is not None else None,
            index_tables=LandmarkIndexTables.from_dict(config.get('landmarks')),
        )


def load_tracker_config(config_path: Optional[Union[str, Path]] = None) -> TrackerConfig:
    """
    Load and validate tracker settings from YAML.

    Args:
        config_path: YAML file, defaults to configs/expression_tracker.yaml

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the configuration is invalid
    """
    path = config_path if config_path is not None else DEFAULT_CONFIG_PATH
    tracker_config = TrackerConfig.from_dict(load_config(path))

    errors = tracker_config.validate()
    if errors:
        raise ValueError(f"Invalid configuration: {errors}")

    logger.info(
        f"Tracker config: threshold={tracker_config.change_threshold}, "
        f"max_duration={tracker_config.max_duration_minutes}min, "
        f"max_frames={tracker_config.max_frames}"
    )
    return tracker_config
