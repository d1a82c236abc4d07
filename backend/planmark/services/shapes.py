"""
Shape Model & Registry

Typed records for the four annotation kinds and the ordered per-kind
collections that hold them. Insertion order is z-order: the last shape of a
kind is drawn on top and is hit-tested first.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging
import math

from ..core.errors import ShapeNotFoundError
from .geometry import (
    Point,
    distance,
    midpoint,
    polygon_area,
    polygon_centroid,
    polygon_perimeter,
)
from .scale_calibration import CalibrationState, format_area, format_length

logger = logging.getLogger(__name__)


class ShapeKind(str, Enum):
    """Annotation kinds, in hit-test priority order."""

    POLYGON = "polygon"
    RECTANGLE = "rectangle"
    SEGMENT = "segment"
    TEXT = "text"


# Document key holding each kind's collection
COLLECTION_KEYS: Dict[ShapeKind, str] = {
    ShapeKind.POLYGON: "polygons",
    ShapeKind.SEGMENT: "segments",
    ShapeKind.RECTANGLE: "rectangles",
    ShapeKind.TEXT: "texts",
}


def _points_from_list(raw: Any) -> List[Point]:
    if not isinstance(raw, list):
        raise TypeError("points must be a list")
    return [Point.from_dict(p) for p in raw]


def _string_field(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        return default
    return value


def _color_field(data: Dict[str, Any], default: str) -> str:
    return _string_field(data, "color", default)


def _flag_field(data: Dict[str, Any], key: str) -> bool:
    # Only a real boolean counts; anything else means "shown"
    value = data.get(key)
    return value if isinstance(value, bool) else True


@dataclass
class PolygonShape:
    """Free-form closed polygon with an optional area label."""

    points: List[Point]
    color: str
    show_area: bool = True

    kind = ShapeKind.POLYGON

    @property
    def area_px(self) -> float:
        return polygon_area(self.points)

    @property
    def perimeter_px(self) -> float:
        return polygon_perimeter(self.points)

    @property
    def centroid(self) -> Point:
        return polygon_centroid(self.points)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "points": [p.to_dict() for p in self.points],
            "color": self.color,
            "showArea": self.show_area,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_color: str) -> "PolygonShape":
        """
        Create PolygonShape from dictionary.

        Raises:
            ValueError: If fewer than 3 points are present.
        """
        points = _points_from_list(data.get("points"))
        if len(points) < 3:
            raise ValueError(f"Polygon must have at least 3 points, got {len(points)}")
        return cls(
            points=points,
            color=_color_field(data, default_color),
            show_area=_flag_field(data, "showArea"),
        )


@dataclass
class SegmentShape:
    """Two-point measured line with an optional length label."""

    points: List[Point]
    color: str
    show_length: bool = True

    kind = ShapeKind.SEGMENT

    @property
    def length_px(self) -> float:
        return distance(self.points[0], self.points[1])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "points": [p.to_dict() for p in self.points],
            "color": self.color,
            "showLength": self.show_length,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_color: str) -> "SegmentShape":
        """
        Create SegmentShape from dictionary.

        Raises:
            ValueError: If the entry does not hold exactly 2 points.
        """
        points = _points_from_list(data.get("points"))
        if len(points) != 2:
            raise ValueError(f"Segment must have exactly 2 points, got {len(points)}")
        return cls(
            points=points,
            color=_color_field(data, default_color),
            show_length=_flag_field(data, "showLength"),
        )


@dataclass
class RectangleShape:
    """
    Rectangle stored as its 4 corners A, B, C, D.

    AB is the base drawn by the user; BC is perpendicular to it.
    """

    points: List[Point]
    color: str
    show_area: bool = True

    kind = ShapeKind.RECTANGLE

    @property
    def width_px(self) -> float:
        return distance(self.points[0], self.points[1])

    @property
    def height_px(self) -> float:
        return distance(self.points[1], self.points[2])

    @property
    def area_px(self) -> float:
        return polygon_area(self.points)

    @property
    def perimeter_px(self) -> float:
        return polygon_perimeter(self.points)

    @property
    def centroid(self) -> Point:
        return polygon_centroid(self.points)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "points": [p.to_dict() for p in self.points],
            "color": self.color,
            "showArea": self.show_area,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_color: str) -> "RectangleShape":
        """
        Create RectangleShape from dictionary.

        Raises:
            ValueError: If the entry does not hold exactly 4 points.
        """
        points = _points_from_list(data.get("points"))
        if len(points) != 4:
            raise ValueError(f"Rectangle must have exactly 4 points, got {len(points)}")
        return cls(
            points=points,
            color=_color_field(data, default_color),
            show_area=_flag_field(data, "showArea"),
        )


@dataclass
class TextShape:
    """Free text label anchored at its baseline-left point."""

    anchor: Point
    content: str
    color: str
    font_size: float
    font_family: str

    kind = ShapeKind.TEXT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "x": self.anchor.x,
            "y": self.anchor.y,
            "text": self.content,
            "color": self.color,
            "fontSize": self.font_size,
            "fontFamily": self.font_family,
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        default_color: str,
        default_font_size: float,
        default_font_family: str,
    ) -> "TextShape":
        """
        Create TextShape from dictionary.

        Raises:
            KeyError, TypeError, ValueError: If the anchor is missing or not numeric.
        """
        font_size = data.get("fontSize")
        if (
            not isinstance(font_size, (int, float))
            or isinstance(font_size, bool)
            or not math.isfinite(font_size)
            or font_size <= 0
        ):
            font_size = default_font_size
        return cls(
            anchor=Point.from_dict(data),
            content=str(data.get("text") or ""),
            color=_color_field(data, default_color),
            font_size=float(font_size),
            font_family=_string_field(data, "fontFamily", default_font_family),
        )


Shape = Union[PolygonShape, SegmentShape, RectangleShape, TextShape]


@dataclass(frozen=True)
class Selection:
    """
    Back-reference to a shape in the registry.

    generation is the owning collection's generation when the selection was
    made; a mismatch means the collection changed and the index may be stale.
    """

    kind: ShapeKind
    index: int
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "index": self.index, "generation": self.generation}


@dataclass
class ShapeMeasurement:
    """Derived quantities for one shape, in meters."""

    kind: ShapeKind
    index: int
    color: str
    length_m: Optional[float] = None
    area_m2: Optional[float] = None
    perimeter_m: Optional[float] = None
    width_m: Optional[float] = None
    height_m: Optional[float] = None
    label: Optional[str] = None
    label_position: Optional[Point] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "index": self.index,
            "color": self.color,
            "length_m": self.length_m,
            "area_m2": self.area_m2,
            "perimeter_m": self.perimeter_m,
            "width_m": self.width_m,
            "height_m": self.height_m,
            "label": self.label,
            "label_position": self.label_position.to_dict() if self.label_position else None,
        }


def measure_shape(shape: Shape, index: int, calibration: CalibrationState) -> ShapeMeasurement:
    """
    Compute the real-world quantities and label of a shape.

    The label is None when the shape's label is hidden.
    """
    if shape.kind is ShapeKind.POLYGON:
        area_m2 = calibration.area_m2(shape.area_px)
        return ShapeMeasurement(
            kind=shape.kind,
            index=index,
            color=shape.color,
            area_m2=area_m2,
            perimeter_m=calibration.length_m(shape.perimeter_px),
            label=format_area(area_m2) if shape.show_area else None,
            label_position=shape.centroid,
        )

    if shape.kind is ShapeKind.RECTANGLE:
        area_m2 = calibration.area_m2(shape.area_px)
        return ShapeMeasurement(
            kind=shape.kind,
            index=index,
            color=shape.color,
            area_m2=area_m2,
            perimeter_m=calibration.length_m(shape.perimeter_px),
            width_m=calibration.length_m(shape.width_px),
            height_m=calibration.length_m(shape.height_px),
            label=format_area(area_m2) if shape.show_area else None,
            label_position=shape.centroid,
        )

    if shape.kind is ShapeKind.SEGMENT:
        length_m = calibration.length_m(shape.length_px)
        return ShapeMeasurement(
            kind=shape.kind,
            index=index,
            color=shape.color,
            length_m=length_m,
            label=format_length(length_m) if shape.show_length else None,
            label_position=midpoint(shape.points[0], shape.points[1]),
        )

    if shape.kind is ShapeKind.TEXT:
        return ShapeMeasurement(
            kind=shape.kind,
            index=index,
            color=shape.color,
            label=shape.content,
            label_position=shape.anchor,
        )

    raise TypeError(f"Unknown shape kind: {shape.kind!r}")


class ShapeRegistry:
    """
    Four independent ordered collections, one per ShapeKind.

    Deleting or clearing bumps that collection's generation counter so
    outstanding Selections can be detected as stale. Appends land after
    every existing index and leave selections valid.
    """

    def __init__(self):
        self._shapes: Dict[ShapeKind, List[Shape]] = {kind: [] for kind in ShapeKind}
        self._generations: Dict[ShapeKind, int] = {kind: 0 for kind in ShapeKind}

    def __len__(self) -> int:
        return sum(len(items) for items in self._shapes.values())

    def items(self, kind: ShapeKind) -> List[Shape]:
        """Shapes of one kind in insertion order (read-only copy)."""
        return list(self._shapes[kind])

    def generation(self, kind: ShapeKind) -> int:
        return self._generations[kind]

    def append(self, shape: Shape) -> Selection:
        """Append a shape on top of its collection and return a reference to it."""
        items = self._shapes[shape.kind]
        items.append(shape)
        logger.debug(f"Added {shape.kind.value} #{len(items) - 1}")
        return Selection(shape.kind, len(items) - 1, self._generations[shape.kind])

    def get(self, kind: ShapeKind, index: int) -> Shape:
        """
        Fetch a shape by kind and index.

        Raises:
            ShapeNotFoundError: If index is out of range.
        """
        items = self._shapes[kind]
        if index < 0 or index >= len(items):
            raise ShapeNotFoundError(f"No {kind.value} at index {index}")
        return items[index]

    def delete(self, kind: ShapeKind, index: int) -> Shape:
        """
        Remove a shape; later indices of the same kind shift down by one.

        Raises:
            ShapeNotFoundError: If index is out of range.
        """
        shape = self.get(kind, index)
        del self._shapes[kind][index]
        self._generations[kind] += 1
        logger.debug(f"Deleted {kind.value} #{index}")
        return shape

    def clear(self) -> None:
        for kind in ShapeKind:
            if self._shapes[kind]:
                self._shapes[kind].clear()
                self._generations[kind] += 1

    def selection_for(self, kind: ShapeKind, index: int) -> Selection:
        """Build a Selection stamped with the current generation."""
        self.get(kind, index)
        return Selection(kind, index, self._generations[kind])

    def resolve(self, selection: Selection) -> Optional[Shape]:
        """Return the selected shape, or None if the selection is stale."""
        if selection.generation != self._generations[selection.kind]:
            return None
        items = self._shapes[selection.kind]
        if 0 <= selection.index < len(items):
            return items[selection.index]
        return None

    def update(
        self,
        kind: ShapeKind,
        index: int,
        *,
        color: Optional[str] = None,
        show_label: Optional[bool] = None,
        content: Optional[str] = None,
        font_size: Optional[float] = None,
        font_family: Optional[str] = None,
    ) -> Shape:
        """
        Change display attributes of one shape in place.

        show_label maps to showArea for polygons and rectangles and to
        showLength for segments. content, font_size and font_family apply
        to text only.

        Raises:
            ShapeNotFoundError: If index is out of range.
            ValueError: If an attribute does not apply to the shape's kind
                or font_size is not positive.
        """
        shape = self.get(kind, index)

        if show_label is not None and kind is ShapeKind.TEXT:
            raise ValueError("Text labels have no derived measurement to show or hide")
        if kind is not ShapeKind.TEXT and (
            content is not None or font_size is not None or font_family is not None
        ):
            raise ValueError(f"Font and content attributes only apply to text, not {kind.value}")
        if font_size is not None and font_size <= 0:
            raise ValueError(f"font_size must be positive, got {font_size}")

        if color is not None:
            shape.color = color
        if show_label is not None:
            if kind is ShapeKind.SEGMENT:
                shape.show_length = show_label
            else:
                shape.show_area = show_label
        if content is not None:
            shape.content = content
        if font_size is not None:
            shape.font_size = float(font_size)
        if font_family is not None:
            shape.font_family = font_family

        return shape

    def measurements(self, calibration: CalibrationState) -> List[ShapeMeasurement]:
        """Measurements for every shape, grouped by kind in priority order."""
        results = []
        for kind in ShapeKind:
            for index, shape in enumerate(self._shapes[kind]):
                results.append(measure_shape(shape, index, calibration))
        return results
