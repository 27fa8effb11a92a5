"""
Integration tests for the tracking session, session driver and configuration.

Tests cover:
- Frame processing, change recording and finalize/reset
- Dropped frames (degenerate geometry) and invalid input
- Session budget enforcement
- YAML configuration loading and validation
"""

import json

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from expression_pipeline import (
    FaceSessionAnalyzer,
    FacialExpressionTracker,
    InvalidLandmarkFrameError,
    OutOfOrderFrameError,
    TrackerConfig,
    analyze_landmark_sequence,
    load_tracker_config,
)
from expression_pipeline.change_detector import METRIC_HEAD_TILT, METRIC_LEFT_EAR
from utils.config_loader import get_nested_config, load_config
from synthetic_landmarks import (
    LEFT_EYE,
    make_face_landmarks,
    make_overflowing_face,
    rotate_landmarks,
)


def degenerate_face():
    """Face whose left eye corners coincide."""
    lm = make_face_landmarks()
    p1, p4 = LEFT_EYE[0], LEFT_EYE[3]
    lm[p4] = lm[p1]
    return lm


class TestFacialExpressionTracker:
    """Test the tracking session."""

    def test_defaults(self):
        tracker = FacialExpressionTracker()

        assert tracker.change_threshold == 0.15
        assert tracker.max_duration_ms == 2 * 60 * 1000
        assert tracker.frame_count == 0

    def test_first_frame_never_fires(self):
        """The first frame of a session records metrics but no changes."""
        tracker = FacialExpressionTracker()

        metrics = tracker.process_frame(make_face_landmarks(ear_left=0.05, mar=0.9), 0.0)

        assert metrics is not None
        assert tracker.frame_count == 1
        assert tracker.significant_changes == []

    def test_blink_recorded(self):
        """A blink between two frames is recorded at the second frame's timestamp."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(ear_left=0.30), 0.0)
        tracker.process_frame(make_face_landmarks(ear_left=0.05), 33.0)

        changes = tracker.significant_changes
        assert len(changes) == 1
        assert changes[0].metric == METRIC_LEFT_EAR
        assert changes[0].timestamp == 33.0
        assert changes[0].change_rate == pytest.approx(0.25)
        assert 'closed' in changes[0].description

    def test_head_tilt_recorded(self):
        """Rotating the whole face by 10 degrees only fires a tilt change."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(), 0.0)
        tracker.process_frame(rotate_landmarks(make_face_landmarks(), 10.0), 33.0)

        assert [c.metric for c in tracker.significant_changes] == [METRIC_HEAD_TILT]

    def test_change_timestamps_match_frames(self):
        """Every change is stamped with a recorded frame timestamp."""
        tracker = FacialExpressionTracker()
        for i, ear in enumerate([0.3, 0.05, 0.3, 0.05, 0.3]):
            tracker.process_frame(make_face_landmarks(ear_left=ear, mar=ear), i * 33.0)

        frame_times = {m.timestamp for m in tracker.metrics_history}
        assert len(tracker.significant_changes) == 8
        assert all(c.timestamp in frame_times for c in tracker.significant_changes)

    def test_degenerate_frame_dropped(self):
        """Degenerate frames are skipped: no history entry, no comparison."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(ear_left=0.3), 0.0)

        assert tracker.process_frame(degenerate_face(), 33.0) is None

        tracker.process_frame(make_face_landmarks(ear_left=0.3), 66.0)

        assert tracker.frame_count == 2
        assert tracker.dropped_frames == 1
        assert tracker.significant_changes == []

    def test_non_finite_metrics_frame_dropped(self):
        """A frame whose metrics overflow is dropped without touching history."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(), 0.0)

        assert tracker.process_frame(make_overflowing_face(), 33.0) is None

        assert tracker.frame_count == 1
        assert tracker.dropped_frames == 1
        assert tracker.significant_changes == []

    def test_history_counts_only_accepted_frames(self):
        frames = [make_face_landmarks(), degenerate_face(), make_face_landmarks(),
                  degenerate_face(), degenerate_face(), make_face_landmarks()]
        tracker = FacialExpressionTracker()

        for i, lm in enumerate(frames):
            tracker.process_frame(lm, i * 10.0)

        assert tracker.frame_count == 3
        assert tracker.dropped_frames == 3

    def test_invalid_frame_raises(self):
        """Short frames are reported to the caller, not dropped silently."""
        tracker = FacialExpressionTracker()

        with pytest.raises(InvalidLandmarkFrameError):
            tracker.process_frame(make_face_landmarks()[:100], 0.0)

        assert tracker.frame_count == 0

    def test_out_of_order_frame_raises(self):
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(), 100.0)

        with pytest.raises(OutOfOrderFrameError):
            tracker.process_frame(make_face_landmarks(), 50.0)

        assert tracker.frame_count == 1

    def test_extract_metrics_alias(self):
        tracker = FacialExpressionTracker()

        metrics = tracker.extract_metrics(make_face_landmarks(), 0.0)

        assert metrics is tracker.metrics_history[0]

    def test_finalize(self):
        """finalize returns history, changes and summary without clearing state."""
        tracker = FacialExpressionTracker()
        for i, ear in enumerate([0.2, 0.3, 0.4]):
            tracker.process_frame(make_face_landmarks(ear_left=ear), 1000.0 + i * 500.0)

        result = tracker.finalize()

        assert len(result.metrics_history) == 3
        assert result.summary.total_duration == pytest.approx(1000.0)
        assert result.summary.average_metrics['eyeAspectRatio']['left'] == pytest.approx(0.3)
        assert 'eyebrowHeight' not in result.summary.average_metrics
        assert result.summary.change_count == len(result.significant_changes)
        assert tracker.frame_count == 3

    def test_finalize_json_bundle(self):
        """The finalize bundle serializes to JSON with the camelCase contract."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(ear_left=0.3), 0.0)
        tracker.process_frame(make_face_landmarks(ear_left=0.05), 33.0)

        data = json.loads(json.dumps(tracker.finalize().to_dict()))

        assert set(data) == {'metricsHistory', 'significantChanges', 'summary'}
        assert data['significantChanges'][0]['metric'] == 'leftEyeAspectRatio'
        assert 'changeRate' in data['significantChanges'][0]
        assert data['summary']['changeCount'] == 1
        assert data['metricsHistory'][1]['eyeAspectRatio']['left'] == pytest.approx(0.05)

    def test_reset_is_idempotent(self):
        """Reset twice leaves the same empty state as a fresh tracker."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(ear_left=0.3), 0.0)
        tracker.process_frame(make_face_landmarks(ear_left=0.05), 33.0)
        tracker.process_frame(degenerate_face(), 66.0)

        tracker.reset()
        tracker.reset()

        fresh = FacialExpressionTracker()
        assert tracker.metrics_history == fresh.metrics_history == []
        assert tracker.significant_changes == fresh.significant_changes == []
        assert tracker.dropped_frames == fresh.dropped_frames == 0
        assert tracker.finalize().to_dict() == fresh.finalize().to_dict()

    def test_reuse_after_reset(self):
        """The first frame after reset starts a new session and does not fire."""
        tracker = FacialExpressionTracker()
        tracker.process_frame(make_face_landmarks(ear_left=0.3), 5000.0)
        tracker.reset()

        tracker.process_frame(make_face_landmarks(ear_left=0.05), 0.0)

        assert tracker.frame_count == 1
        assert tracker.significant_changes == []

    def test_bounded_history(self):
        config = TrackerConfig(max_frames=4)
        tracker = FacialExpressionTracker(config=config)
        for i in range(10):
            tracker.process_frame(make_face_landmarks(ear_left=0.3 if i % 2 else 0.05), i * 33.0)

        assert tracker.frame_count == 4
        oldest = tracker.metrics_history[0].timestamp
        assert all(c.timestamp >= oldest for c in tracker.significant_changes)
        assert len(tracker.significant_changes) == 4

    def test_overrides_do_not_mutate_config(self):
        config = TrackerConfig()

        tracker = FacialExpressionTracker(max_duration_minutes=5, change_threshold=0.3, config=config)

        assert tracker.max_duration_ms == 5 * 60 * 1000
        assert tracker.change_threshold == 0.3
        assert config.change_threshold == 0.15

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError, match="Invalid configuration"):
            FacialExpressionTracker(max_duration_minutes=0)


class TestFaceSessionAnalyzer:
    """Test the caller-side session driver."""

    def test_budget_enforced(self):
        """Frames after the session budget are not recorded."""
        analyzer = FaceSessionAnalyzer(max_duration_minutes=1)

        for ts in (10_000.0, 40_000.0, 70_000.0):
            assert analyzer.analyze_frame(make_face_landmarks(), ts) is not None
        assert analyzer.analyze_frame(make_face_landmarks(), 70_001.0) is None

        assert analyzer.is_expired
        assert len(analyzer.finalize().metrics_history) == 3

    def test_missing_face_skipped(self):
        analyzer = FaceSessionAnalyzer()

        assert analyzer.analyze_frame(None, 0.0) is None
        analyzer.analyze_frame(make_face_landmarks(), 33.0)

        assert analyzer.skipped_frames == 1
        assert len(analyzer.finalize().metrics_history) == 1

    def test_bad_frames_do_not_abort_session(self):
        """Invalid and degenerate frames are skipped and the session continues."""
        analyzer = FaceSessionAnalyzer()

        analyzer.analyze_frame(make_face_landmarks(), 0.0)
        assert analyzer.analyze_frame(make_face_landmarks()[:10], 33.0) is None
        assert analyzer.analyze_frame(degenerate_face(), 66.0) is None
        assert analyzer.analyze_frame(make_face_landmarks(), 99.0) is not None

        assert analyzer.skipped_frames == 2
        assert len(analyzer.finalize().metrics_history) == 2

    def test_nan_first_timestamp_does_not_disable_budget(self):
        """A NaN tick is skipped and the clock starts at the next valid frame."""
        analyzer = FaceSessionAnalyzer(max_duration_minutes=1)

        assert analyzer.analyze_frame(make_face_landmarks(), float('nan')) is None
        assert analyzer.start_time is None

        assert analyzer.analyze_frame(make_face_landmarks(), 0.0) is not None
        assert analyzer.analyze_frame(make_face_landmarks(), 600_000.0) is None

        assert analyzer.start_time == 0.0
        assert analyzer.is_expired
        assert analyzer.skipped_frames == 1
        assert len(analyzer.finalize().metrics_history) == 1

    def test_non_numeric_timestamp_skipped(self):
        """A string timestamp is a skipped tick, not a session-ending error."""
        analyzer = FaceSessionAnalyzer()

        assert analyzer.analyze_frame(make_face_landmarks(), "bogus") is None
        assert analyzer.analyze_frame(make_face_landmarks(), None) is None
        assert analyzer.analyze_frame(make_face_landmarks(), 33.0) is not None

        assert analyzer.skipped_frames == 2
        assert analyzer.start_time == 33.0
        assert len(analyzer.finalize().metrics_history) == 1

    def test_cleanup(self):
        analyzer = FaceSessionAnalyzer(max_duration_minutes=1)
        analyzer.analyze_frame(make_face_landmarks(), 0.0)
        analyzer.analyze_frame(make_face_landmarks(), 90_000.0)
        assert analyzer.is_expired

        analyzer.cleanup()

        assert analyzer.start_time is None
        assert not analyzer.is_expired
        assert analyzer.finalize().metrics_history == []
        assert analyzer.analyze_frame(make_face_landmarks(), 200_000.0) is not None

    def test_analyze_landmark_sequence(self):
        frames = [make_face_landmarks(ear_left=0.3), None, make_face_landmarks(ear_left=0.05)]
        timestamps = [0.0, 33.0, 66.0]

        result = analyze_landmark_sequence(frames, timestamps)

        assert len(result.metrics_history) == 2
        assert result.summary.change_count == 1
        assert result.summary.total_duration == pytest.approx(66.0)

    def test_analyze_landmark_sequence_length_mismatch(self):
        """Frames and timestamps must pair up one to one."""
        frames = [make_face_landmarks(), make_face_landmarks()]

        with pytest.raises(ValueError, match="2 landmark frames but 3 timestamps"):
            analyze_landmark_sequence(frames, [0.0, 33.0, 66.0])

    def test_analyze_landmark_sequence_accepts_generators(self):
        frames = (make_face_landmarks() for _ in range(3))

        result = analyze_landmark_sequence(frames, iter([0.0, 33.0, 66.0]))

        assert len(result.metrics_history) == 3


class TestConfiguration:
    """Test YAML configuration loading."""

    def test_default_config_file(self):
        """The shipped config matches the built-in defaults."""
        config = load_tracker_config()

        assert config == TrackerConfig()

    def test_overrides_from_yaml(self, tmp_path):
        path = tmp_path / 'tracker.yaml'
        path.write_text(
            "tracker:\n"
            "  max_duration_minutes: 5\n"
            "  change_threshold: 0.2\n"
            "thresholds:\n"
            "  head_tilt_degrees: 8\n"
            "history:\n"
            "  max_frames: 100\n"
            "landmarks:\n"
            "  head_tilt: [130, 359]\n"
        )

        config = load_tracker_config(path)

        assert config.max_duration_ms == 5 * 60 * 1000
        assert config.change_threshold == 0.2
        assert config.head_tilt_degrees == 8.0
        assert config.eye_closed_ear == 0.2
        assert config.max_frames == 100
        assert config.index_tables.head_tilt == (130, 359)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text("tracker:\n  change_threshold: -1\n")

        with pytest.raises(ValueError, match="Invalid configuration"):
            load_tracker_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_tracker_config(tmp_path / 'missing.yaml')

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text("")

        assert load_config(path) == {}
        assert load_tracker_config(path) == TrackerConfig()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError):
            load_config(path)

    def test_get_nested_config(self):
        config = {'a': {'b': {'c': 3}, 'n': None}}

        assert get_nested_config(config, 'a.b.c') == 3
        assert get_nested_config(config, 'a.x', default=7) == 7
        assert get_nested_config(config, 'a.n', default=1) == 1
