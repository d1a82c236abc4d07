"""
Geometry Kernel

Pure functions over 2D points in image-pixel space: distances, polygon
area and centroid, containment, angle snapping and the constructions used
while a shape is being drawn.

No unit conversion happens here; see scale_calibration for meters.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import math

from ..core.errors import DegenerateRectangleBase


SNAP_STEP_RADIANS = math.pi / 4  # 45 degrees


@dataclass(frozen=True)
class Point:
    """A point in image-pixel coordinates."""

    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary for JSON serialization."""
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Point":
        """Create Point from a {x, y} dictionary."""
        return cls(x=float(data["x"]), y=float(data["y"]))

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.x - other.x, self.y - other.y)

    def scaled(self, factor: float) -> "Point":
        return Point(self.x * factor, self.y * factor)

    def dot(self, other: "Point") -> float:
        return self.x * other.x + self.y * other.y


def distance(p: Point, q: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(q.x - p.x, q.y - p.y)


def midpoint(p: Point, q: Point) -> Point:
    """Point halfway between p and q."""
    return Point((p.x + q.x) / 2.0, (p.y + q.y) / 2.0)


def manhattan_length(p1: Point, p2: Point) -> float:
    """Length of the horizontal-then-vertical path from p1 to p2."""
    return abs(p2.x - p1.x) + abs(p2.y - p1.y)


def polygon_signed_area(points: Sequence[Point]) -> float:
    """
    Signed area of a polygon using the Shoelace formula.

    A = 0.5 * Σ(x_i * y_{i+1} - x_{i+1} * y_i), with the vertex list
    treated as closed. The sign follows the vertex orientation.

    Args:
        points: Polygon vertices in order.

    Returns:
        Signed area in pixel². 0 for fewer than 3 points or collinear vertices.
    """
    n = len(points)
    if n < 3:
        return 0.0

    area = 0.0
    for i in range(n):
        j = (i + 1) % n  # Wrap around to close the polygon
        area += points[i].x * points[j].y
        area -= points[j].x * points[i].y

    return area / 2.0


def polygon_area(points: Sequence[Point]) -> float:
    """Absolute polygon area in pixel²."""
    return abs(polygon_signed_area(points))


def polygon_perimeter(points: Sequence[Point]) -> float:
    """
    Perimeter of a closed polygon in pixels.

    Returns 0 for fewer than 2 points.
    """
    n = len(points)
    if n < 2:
        return 0.0
    return sum(distance(points[i], points[(i + 1) % n]) for i in range(n))


def polygon_centroid(points: Sequence[Point]) -> Point:
    """
    Area-weighted centroid of a polygon.

    When the signed area is zero (fewer than 3 points, or all vertices
    collinear) the first vertex is returned instead. That is a placeholder
    for label placement, not a true centroid.

    Raises:
        ValueError: If points is empty.
    """
    if not points:
        raise ValueError("Cannot compute centroid of an empty polygon")

    signed_area = polygon_signed_area(points)
    if signed_area == 0:
        return points[0]

    n = len(points)
    cx = 0.0
    cy = 0.0
    for i in range(n):
        p = points[i]
        q = points[(i + 1) % n]
        cross = p.x * q.y - q.x * p.y
        cx += (p.x + q.x) * cross
        cy += (p.y + q.y) * cross

    factor = 1.0 / (6.0 * signed_area)
    return Point(cx * factor, cy * factor)


def point_in_polygon(point: Point, verts: Sequence[Point]) -> bool:
    """
    Even-odd ray casting containment test.

    Works for any simple polygon, including the 4 corners of a rectangle.

    Args:
        point: Point to test
        verts: Polygon vertices; the last vertex connects back to the first

    Returns:
        True if point is inside the polygon
    """
    n = len(verts)
    if n < 3:
        return False

    inside = False
    j = n - 1

    for i in range(n):
        xi, yi = verts[i].x, verts[i].y
        xj, yj = verts[j].x, verts[j].y

        if ((yi > point.y) != (yj > point.y)) and (
            point.x < (xj - xi) * (point.y - yi) / (yj - yi) + xi
        ):
            inside = not inside

        j = i

    return inside


def distance_to_segment_point(point: Point, v: Point, w: Point) -> float:
    """
    Distance from point to the closed segment vw.

    The projection parameter is clamped to [0, 1], so points beyond either
    end measure to that endpoint. A zero-length segment measures to v.
    """
    seg_len2 = (w.x - v.x) ** 2 + (w.y - v.y) ** 2
    if seg_len2 == 0:
        return distance(point, v)

    t = ((point.x - v.x) * (w.x - v.x) + (point.y - v.y) * (w.y - v.y)) / seg_len2
    t = max(0.0, min(1.0, t))
    projection = Point(v.x + t * (w.x - v.x), v.y + t * (w.y - v.y))
    return distance(point, projection)


def snap_angle(origin: Point, target: Point) -> Point:
    """
    Constrain target to the nearest 45° direction from origin.

    The distance from origin is preserved. Must run before the point is
    used for preview or committed to a shape.
    """
    radius = distance(origin, target)
    if radius == 0:
        return target

    angle = math.atan2(target.y - origin.y, target.x - origin.x)
    snapped = round(angle / SNAP_STEP_RADIANS) * SNAP_STEP_RADIANS
    return Point(
        origin.x + radius * math.cos(snapped),
        origin.y + radius * math.sin(snapped),
    )


def rectangle_from_base_and_height(a: Point, b: Point, p: Point) -> Optional[List[Point]]:
    """
    Build a rectangle from a base edge and a third point.

    The signed height is the projection of (p - a) onto the unit normal of
    AB, so the result has right angles by construction:

        C = B + height * n
        D = A + height * n

    Args:
        a: First base endpoint
        b: Second base endpoint
        p: Any point fixing the height (and side) of the rectangle

    Returns:
        [A, B, C, D], or None when A and B coincide.
    """
    base = b - a
    base_len = math.hypot(base.x, base.y)
    if base_len == 0:
        return None

    normal = Point(-base.y / base_len, base.x / base_len)
    height = (p - a).dot(normal)
    offset = normal.scaled(height)
    return [a, b, b + offset, a + offset]


def build_rectangle(a: Point, b: Point, p: Point) -> List[Point]:
    """
    Like rectangle_from_base_and_height, but a zero-length base is an error.

    Raises:
        DegenerateRectangleBase: If a and b coincide.
    """
    corners = rectangle_from_base_and_height(a, b, p)
    if corners is None:
        raise DegenerateRectangleBase(f"Rectangle base has zero length at ({a.x}, {a.y})")
    return corners


def stepped_path_midpoint(p1: Point, p2: Point) -> Point:
    """
    Point halfway along the L-shaped path p1 -> (p2.x, p1.y) -> p2.

    Used to place the length label of a stepped preview path.
    """
    if p1 == p2:
        return p1

    dx = p2.x - p1.x
    dy = p2.y - p1.y
    half = (abs(dx) + abs(dy)) / 2.0

    if half <= abs(dx):
        return Point(p1.x + math.copysign(half, dx), p1.y)

    # Past the corner: walk the remainder along the vertical leg
    return Point(p2.x, p1.y + math.copysign(half - abs(dx), dy))
