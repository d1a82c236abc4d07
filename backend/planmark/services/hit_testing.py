"""
Hit-Test / Selection Service

Resolves which shape, if any, sits under an image-pixel coordinate.

Priority: area shapes win over thin ones, since a click inside a filled
region is more likely aimed at the region.

    polygons -> rectangles -> segments -> texts

Within each kind the topmost (most recently added) shape is tested first.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, Tuple
import logging

from PIL import ImageFont

from .geometry import Point, distance_to_segment_point, point_in_polygon
from .project import ProjectState
from .shapes import Selection, ShapeKind, ShapeRegistry, TextShape

logger = logging.getLogger(__name__)


DEFAULT_HIT_TOLERANCE_PX = 6.0

# Returns (width, height) of a text label in image pixels
TextMeasurer = Callable[[TextShape], Tuple[float, float]]


@lru_cache(maxsize=64)
def _load_font(font_family: str, font_size: float):
    try:
        return ImageFont.truetype(font_family, size=max(1, int(round(font_size))))
    except OSError:
        # Family not installed on this host
        return ImageFont.load_default(size=font_size)


class PillowTextMeasurer:
    """
    Measures label width with Pillow's font metrics.

    The height is the font size, matching how labels are laid out on a
    canvas with an alphabetic baseline at the anchor.
    """

    def __call__(self, shape: TextShape) -> Tuple[float, float]:
        font = _load_font(shape.font_family, shape.font_size)
        width = float(font.getlength(shape.content))
        return width, float(shape.font_size)


@dataclass(frozen=True)
class TextBox:
    """Axis-aligned box of a text label."""

    left: float
    top: float
    right: float
    bottom: float

    def contains(self, point: Point) -> bool:
        return self.left <= point.x <= self.right and self.top <= point.y <= self.bottom


def text_box(shape: TextShape, measure_text: TextMeasurer) -> TextBox:
    """Box from the anchor rightwards and upwards from the baseline."""
    width, height = measure_text(shape)
    return TextBox(
        left=shape.anchor.x,
        top=shape.anchor.y - height,
        right=shape.anchor.x + width,
        bottom=shape.anchor.y,
    )


def locate(
    registry: ShapeRegistry,
    point: Point,
    measure_text: Optional[TextMeasurer] = None,
    tolerance_px: float = DEFAULT_HIT_TOLERANCE_PX,
) -> Optional[Selection]:
    """
    Find the topmost shape at a point.

    Args:
        registry: Shapes to search
        point: Image-pixel coordinate
        measure_text: Text measurer (default: PillowTextMeasurer)
        tolerance_px: Max distance from a segment that still counts as a hit

    Returns:
        Selection of the first matching shape, or None
    """
    for index in reversed(range(len(registry.items(ShapeKind.POLYGON)))):
        shape = registry.get(ShapeKind.POLYGON, index)
        if point_in_polygon(point, shape.points):
            return registry.selection_for(ShapeKind.POLYGON, index)

    for index in reversed(range(len(registry.items(ShapeKind.RECTANGLE)))):
        shape = registry.get(ShapeKind.RECTANGLE, index)
        if point_in_polygon(point, shape.points):
            return registry.selection_for(ShapeKind.RECTANGLE, index)

    for index in reversed(range(len(registry.items(ShapeKind.SEGMENT)))):
        shape = registry.get(ShapeKind.SEGMENT, index)
        if distance_to_segment_point(point, shape.points[0], shape.points[1]) < tolerance_px:
            return registry.selection_for(ShapeKind.SEGMENT, index)

    texts = registry.items(ShapeKind.TEXT)
    if texts:
        measurer = measure_text or PillowTextMeasurer()
        for index in reversed(range(len(texts))):
            if text_box(texts[index], measurer).contains(point):
                return registry.selection_for(ShapeKind.TEXT, index)

    return None


def select_at(
    project: ProjectState,
    point: Point,
    measure_text: Optional[TextMeasurer] = None,
) -> Optional[Selection]:
    """
    Hit-test and store the result as the project's selection.

    A miss clears the selection.
    """
    selection = locate(
        project.shapes,
        point,
        measure_text=measure_text,
        tolerance_px=project.settings.hit_tolerance_px,
    )
    project.selection = selection
    if selection is not None:
        logger.debug(f"Selected {selection.kind.value} #{selection.index}")
    return selection
