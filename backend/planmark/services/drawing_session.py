"""
Interactive Drawing Session

The state machine that turns pointer input into shapes. Input arrives as
explicit event objects consumed synchronously by DrawingSession.handle();
the session accumulates in-progress points for the active mode, applies
45° snapping, and commits finished shapes to the project.

Mode behaviour once calibrated:
- text: one click asks the text-entry callback for content and commits
- segment: the 2nd click commits
- rectangle: 2 base clicks, the 3rd fixes the height and commits
- polygon: clicks accumulate until FinalizeRequested

Before calibration every click places a calibration point instead.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Union
import logging

from ..core.errors import DegenerateRectangleBase, InsufficientPoints, MissingScale
from .geometry import (
    Point,
    build_rectangle,
    distance,
    manhattan_length,
    midpoint,
    polygon_area,
    polygon_centroid,
    rectangle_from_base_and_height,
    snap_angle,
    stepped_path_midpoint,
)
from .project import ProjectState
from .scale_calibration import format_area, format_length
from .shapes import (
    PolygonShape,
    RectangleShape,
    SegmentShape,
    Selection,
    ShapeKind,
    TextShape,
)

logger = logging.getLogger(__name__)


class DrawingMode(str, Enum):
    """Active drawing tool."""

    POLYGON = "polygon"
    SEGMENT = "segment"
    RECTANGLE = "rectangle"
    TEXT = "text"


# ============================================
# Input events
# ============================================


@dataclass(frozen=True)
class PointerDown:
    """A click at image-pixel coordinates; snap constrains it to 45° steps."""

    x: float
    y: float
    snap: bool = False


@dataclass(frozen=True)
class PointerMoved:
    """Pointer position for the live preview; stepped requests the L-path."""

    x: float
    y: float
    snap: bool = False
    stepped: bool = False


@dataclass(frozen=True)
class ModeChanged:
    mode: DrawingMode


@dataclass(frozen=True)
class FinalizeRequested:
    pass


@dataclass(frozen=True)
class UndoRequested:
    pass


@dataclass(frozen=True)
class ResetRequested:
    pass


@dataclass(frozen=True)
class CalibrationRequested:
    known_distance_m: float


InputEvent = Union[
    PointerDown,
    PointerMoved,
    ModeChanged,
    FinalizeRequested,
    UndoRequested,
    ResetRequested,
    CalibrationRequested,
]

# Asked for label content when a text click lands; None or "" cancels
TextPrompt = Callable[[Point], Optional[str]]


@dataclass
class Preview:
    """What to draw for the shape under construction."""

    path: List[Point]
    closed: bool = False
    label: Optional[str] = None
    label_position: Optional[Point] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": [p.to_dict() for p in self.path],
            "closed": self.closed,
            "label": self.label,
            "label_position": self.label_position.to_dict() if self.label_position else None,
        }


@dataclass
class DrawingSession:
    """
    Transient drawing state for one project. Never serialized.

    Fields:
        project: The project that receives committed shapes
        mode: Active drawing tool
        in_progress_points: Points placed for the shape being drawn
        preview_point: Last pointer position (already snapped)
        stepped_preview: Whether the preview uses the L-shaped path
        text_prompt: Supplies content for text labels
    """

    project: ProjectState
    mode: DrawingMode = DrawingMode.POLYGON
    in_progress_points: List[Point] = field(default_factory=list)
    preview_point: Optional[Point] = None
    stepped_preview: bool = False
    text_prompt: Optional[TextPrompt] = None

    def handle(self, event: InputEvent) -> Optional[Selection]:
        """
        Apply one input event.

        Returns:
            Selection of the committed shape when the event finished one, else None

        Raises:
            InvalidCalibration, InsufficientPoints, MissingScale: see the
                individual handlers; state is left untouched on error.
        """
        if isinstance(event, PointerDown):
            return self.pointer_down(Point(event.x, event.y), snap=event.snap)
        if isinstance(event, PointerMoved):
            self.pointer_moved(Point(event.x, event.y), snap=event.snap, stepped=event.stepped)
            return None
        if isinstance(event, ModeChanged):
            self.set_mode(event.mode)
            return None
        if isinstance(event, FinalizeRequested):
            return self.finalize()
        if isinstance(event, UndoRequested):
            self.undo_last_point()
            return None
        if isinstance(event, ResetRequested):
            self.reset()
            return None
        if isinstance(event, CalibrationRequested):
            self.calibrate(event.known_distance_m)
            return None
        raise TypeError(f"Unsupported input event: {event!r}")

    # ============================================
    # Event handlers
    # ============================================

    @property
    def is_calibrated(self) -> bool:
        return self.project.calibration.is_scale_set

    def _anchor(self) -> Optional[Point]:
        """Previous point that snapping and previews are relative to."""
        if not self.is_calibrated:
            points = self.project.calibration.points
            return points[-1] if len(points) == 1 else None
        if self.in_progress_points:
            return self.in_progress_points[-1]
        return None

    def _apply_snap(self, point: Point, snap: bool) -> Point:
        anchor = self._anchor()
        if snap and anchor is not None:
            return snap_angle(anchor, point)
        return point

    def pointer_down(self, point: Point, snap: bool = False) -> Optional[Selection]:
        """Place a calibration point or an in-progress point for the active mode."""
        if not self.is_calibrated:
            calibration = self.project.calibration
            if calibration.is_full:
                logger.debug("Ignoring click: both calibration points already placed")
                return None
            calibration.add_point(self._apply_snap(point, snap))
            self.preview_point = None
            self.project.mark_dirty()
            return None

        point = self._apply_snap(point, snap)
        self.preview_point = None

        if self.mode is DrawingMode.TEXT:
            return self._commit_text(point)

        if self.mode is DrawingMode.SEGMENT:
            if not self.in_progress_points:
                self.in_progress_points.append(point)
                return None
            shape = SegmentShape(
                points=[self.in_progress_points[0], point],
                color=self.project.default_color(self.mode_kind),
            )
            return self._commit(shape)

        if self.mode is DrawingMode.RECTANGLE:
            if len(self.in_progress_points) < 2:
                self.in_progress_points.append(point)
                return None
            a, b = self.in_progress_points
            try:
                corners = build_rectangle(a, b, point)
            except DegenerateRectangleBase as e:
                logger.debug(f"Discarding rectangle: {e}")
                self.in_progress_points.clear()
                return None
            shape = RectangleShape(
                points=corners,
                color=self.project.default_color(self.mode_kind),
            )
            return self._commit(shape)

        if self.mode is DrawingMode.POLYGON:
            self.in_progress_points.append(point)
            return None

        raise ValueError(f"Unknown drawing mode: {self.mode!r}")

    def pointer_moved(self, point: Point, snap: bool = False, stepped: bool = False) -> None:
        self.preview_point = self._apply_snap(point, snap)
        self.stepped_preview = stepped

    def set_mode(self, mode: DrawingMode) -> None:
        """Switch tools, discarding any unfinished shape."""
        if self.in_progress_points:
            logger.debug(f"Discarding {len(self.in_progress_points)} in-progress points")
        self.mode = DrawingMode(mode)
        self.clear_in_progress()

    def finalize(self) -> Optional[Selection]:
        """
        Commit the polygon being drawn.

        Only polygons need an explicit finalize; other modes ignore it.

        Raises:
            MissingScale: If the project is not calibrated.
            InsufficientPoints: If fewer than 3 points were placed. The
                in-progress points are kept.
        """
        if not self.is_calibrated:
            raise MissingScale("Set the scale before drawing shapes")
        if self.mode is not DrawingMode.POLYGON:
            return None
        if len(self.in_progress_points) < 3:
            raise InsufficientPoints(
                f"A polygon needs at least 3 points, got {len(self.in_progress_points)}"
            )
        shape = PolygonShape(
            points=list(self.in_progress_points),
            color=self.project.default_color(self.mode_kind),
        )
        return self._commit(shape)

    def undo_last_point(self) -> None:
        """Remove the latest in-progress point, or calibration point before calibration."""
        if not self.is_calibrated:
            if self.project.calibration.points:
                self.project.calibration.remove_last_point()
                self.project.mark_dirty()
            return
        if self.in_progress_points:
            self.in_progress_points.pop()

    def calibrate(self, known_distance_m: float) -> float:
        """Set the scale from the placed calibration points; see CalibrationState.set_scale."""
        scale = self.project.calibration.set_scale(known_distance_m)
        self.project.mark_dirty()
        self.clear_in_progress()
        return scale

    def reset(self) -> None:
        """Reset the whole project and this session."""
        self.project.reset()
        self.clear_in_progress()

    def clear_in_progress(self) -> None:
        self.in_progress_points.clear()
        self.preview_point = None
        self.stepped_preview = False

    # ============================================
    # Commit helpers
    # ============================================

    @property
    def mode_kind(self) -> ShapeKind:
        return ShapeKind(self.mode.value)

    def _commit(self, shape) -> Selection:
        # The shape is fully built before anything is cleared, and
        # commit_shape either appends it or raises without side effects.
        selection = self.project.commit_shape(shape)
        self.clear_in_progress()
        return selection

    def _commit_text(self, point: Point) -> Optional[Selection]:
        content = self.text_prompt(point) if self.text_prompt is not None else None
        if not content:
            logger.debug("Text entry cancelled")
            return None
        settings = self.project.settings
        shape = TextShape(
            anchor=point,
            content=content,
            color=self.project.default_color(self.mode_kind),
            font_size=settings.default_font_size,
            font_family=settings.default_font_family,
        )
        return self._commit(shape)

    # ============================================
    # Preview
    # ============================================

    def preview(self) -> Optional[Preview]:
        """
        Geometry and label for the live pointer position.

        Returns None when there is no anchor point or no pointer position.
        """
        anchor = self._anchor()
        target = self.preview_point
        if anchor is None or target is None:
            return None

        if (
            self.is_calibrated
            and self.mode is DrawingMode.RECTANGLE
            and len(self.in_progress_points) == 2
        ):
            corners = rectangle_from_base_and_height(
                self.in_progress_points[0], self.in_progress_points[1], target
            )
            if corners is not None:
                area_m2 = self.project.calibration.area_m2(polygon_area(corners))
                return Preview(
                    path=corners,
                    closed=True,
                    label=format_area(area_m2),
                    label_position=polygon_centroid(corners),
                )

        if self.stepped_preview:
            leg = [anchor, Point(target.x, anchor.y), target]
            length_px = manhattan_length(anchor, target)
            label_position = stepped_path_midpoint(anchor, target)
        else:
            leg = [anchor, target]
            length_px = distance(anchor, target)
            label_position = midpoint(anchor, target)

        path = list(self.in_progress_points[:-1]) + leg if self.is_calibrated else leg
        return Preview(
            path=path,
            label=self._length_label(length_px),
            label_position=label_position,
        )

    def _length_label(self, length_px: float) -> str:
        if not self.is_calibrated:
            # No real-world scale yet: show raw pixels
            return f"{int(round(length_px))} px"
        return format_length(self.project.calibration.length_m(length_px))
