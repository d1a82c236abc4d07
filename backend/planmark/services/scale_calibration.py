"""
Scale Calibration Service

Converts a two-point pixel reference and a known real-world distance into a
meters-per-pixel scale. Every length and area shown to the user goes through
the scale held here.

The unit is a small state machine:

    UNCALIBRATED --set_scale()--> CALIBRATED
         ^                            |
         +----------- reset() --------+
"""

from dataclasses import dataclass, field
from typing import List
import logging
import math

from ..core.errors import InvalidCalibration
from .geometry import Point, distance

logger = logging.getLogger(__name__)


# Calibration uses exactly one reference segment
MAX_CALIBRATION_POINTS = 2
DEFAULT_SCALE = 1.0


@dataclass
class CalibrationState:
    """
    Calibration points plus the resulting scale.

    Fields:
        points: Reference points in image pixels (0, 1 or 2 entries)
        scale: Meters per pixel. 1.0 until calibrated.
        is_scale_set: True once set_scale() succeeded
    """

    points: List[Point] = field(default_factory=list)
    scale: float = DEFAULT_SCALE
    is_scale_set: bool = False

    @property
    def is_full(self) -> bool:
        """True when both reference points have been placed."""
        return len(self.points) >= MAX_CALIBRATION_POINTS

    @property
    def pixel_distance(self) -> float:
        """Pixel length of the reference segment, 0 if incomplete."""
        if len(self.points) < MAX_CALIBRATION_POINTS:
            return 0.0
        return distance(self.points[0], self.points[1])

    def add_point(self, point: Point) -> None:
        """Append a reference point. Callers enforce the two-point limit."""
        self.points.append(point)
        logger.debug(f"Calibration point {len(self.points)} at ({point.x:.1f}, {point.y:.1f})")

    def remove_last_point(self) -> None:
        """Drop the most recent reference point, if any."""
        if self.points:
            self.points.pop()

    def set_scale(self, known_distance_m: float) -> float:
        """
        Calibrate from the two reference points.

        Args:
            known_distance_m: Real-world length of the reference segment in meters

        Returns:
            The new scale in meters per pixel

        Raises:
            InvalidCalibration: If fewer than 2 points exist, the points
                coincide, or the known distance is not a positive number.
        """
        if len(self.points) < MAX_CALIBRATION_POINTS:
            raise InvalidCalibration(
                f"Calibration needs 2 points, got {len(self.points)}"
            )

        pixel_distance = self.pixel_distance
        if pixel_distance == 0:
            raise InvalidCalibration("Calibration points must not coincide")

        if not math.isfinite(known_distance_m) or known_distance_m <= 0:
            raise InvalidCalibration(
                f"Known distance must be a positive number, got {known_distance_m}"
            )

        self.scale = known_distance_m / pixel_distance
        self.is_scale_set = True
        logger.info(
            f"Scale calibrated: {pixel_distance:.2f}px = {known_distance_m:.4f}m "
            f"({self.scale:.6f} m/px)"
        )
        return self.scale

    def reset(self) -> None:
        """Return to the uncalibrated initial state."""
        self.points.clear()
        self.scale = DEFAULT_SCALE
        self.is_scale_set = False

    def length_m(self, length_px: float) -> float:
        """Convert a pixel length to meters."""
        return length_px * self.scale

    def area_m2(self, area_px2: float) -> float:
        """Convert a pixel² area to square meters."""
        return area_px2 * self.scale ** 2


def format_length(meters: float) -> str:
    """Label text for a length, e.g. '10.00 m'."""
    return f"{meters:.2f} m"


def format_area(square_meters: float) -> str:
    """Label text for an area, e.g. '100.00 m²'."""
    return f"{square_meters:.2f} m²"

