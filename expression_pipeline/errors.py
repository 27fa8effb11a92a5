"""
Exceptions raised while turning landmark frames into expression metrics.

All of them derive from ValueError so callers that only care about
"this frame could not be used" can catch a single type.
"""


class LandmarkFrameError(ValueError):
    """Base class for per-frame failures."""


class InvalidLandmarkFrameError(LandmarkFrameError):
    """Frame is malformed or too short for the anatomical index tables."""


class OutOfOrderFrameError(InvalidLandmarkFrameError):
    """Frame timestamp is older than the last recorded frame."""


class DegenerateGeometryError(LandmarkFrameError):
    """A ratio denominator collapsed or a metric came out non-finite."""
