"""
Error kinds raised by the measurement engine.

All of them are recoverable: the attempted action is aborted and the
project state is left as it was before the action.
"""


class MeasurementError(Exception):
    """Base class for user-facing measurement errors."""
    pass


class InvalidCalibration(MeasurementError):
    """Calibration attempted with fewer than 2 points, coincident points, or a bad distance."""
    pass


class InsufficientPoints(MeasurementError):
    """Polygon finalized with fewer than 3 points."""
    pass


class DegenerateRectangleBase(MeasurementError):
    """Rectangle base has zero length."""
    pass


class MissingScale(MeasurementError):
    """A shape commit was attempted before the scale was calibrated."""
    pass


class ShapeNotFoundError(MeasurementError, IndexError):
    """A (kind, index) reference does not point at an existing shape."""
    pass


class ImageDecodeError(MeasurementError):
    """Uploaded bytes or a data URI could not be decoded as a raster image."""
    pass
