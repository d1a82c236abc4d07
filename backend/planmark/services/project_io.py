"""
Project Serialization

Maps a ProjectState to and from the persisted project document:

    {
      "calibrationPoints": [{"x", "y"}, ...],      # 0..2 entries
      "isScaleSet": bool,
      "scale": float,                              # meters per pixel
      "floorPlanImageSrc": str | null,             # data URI
      "polygons":   [{"points", "color", "showArea"}],
      "segments":   [{"points", "color", "showLength"}],
      "rectangles": [{"points", "color", "showArea"}],
      "texts":      [{"x", "y", "text", "color", "fontSize", "fontFamily"}]
    }

Loading is permissive: missing or malformed fields fall back to defaults
and unreadable shape entries are skipped with a warning, never rejected.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging
import math

from ..core.config import Settings, get_settings
from ..core.errors import ImageDecodeError
from .geometry import Point
from .image_loader import FloorPlanImage, decode_data_uri
from .project import ProjectState
from .scale_calibration import DEFAULT_SCALE, MAX_CALIBRATION_POINTS
from .shapes import (
    COLLECTION_KEYS,
    PolygonShape,
    RectangleShape,
    SegmentShape,
    ShapeKind,
    TextShape,
)

logger = logging.getLogger(__name__)


PROJECT_FILE_SUFFIX = ".json"


def to_document(project: ProjectState) -> Dict[str, Any]:
    """Serialize a project into a JSON-compatible document."""
    calibration = project.calibration
    document: Dict[str, Any] = {
        "calibrationPoints": [p.to_dict() for p in calibration.points],
        "isScaleSet": calibration.is_scale_set,
        "scale": calibration.scale,
        "floorPlanImageSrc": project.image.data_uri if project.image else None,
    }
    for kind, key in COLLECTION_KEYS.items():
        document[key] = [shape.to_dict() for shape in project.shapes.items(kind)]
    return document


def _list_field(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"Ignoring '{key}': expected a list, got {type(value).__name__}")
        return []
    return value


def _scale_field(data: Dict[str, Any]) -> float:
    value = data.get("scale", DEFAULT_SCALE)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning(f"Ignoring non-numeric scale {value!r}")
        return DEFAULT_SCALE
    if not math.isfinite(value) or value <= 0:
        logger.warning(f"Ignoring non-positive scale {value!r}")
        return DEFAULT_SCALE
    return float(value)


def _image_field(data: Dict[str, Any]) -> Optional[FloorPlanImage]:
    src = data.get("floorPlanImageSrc")
    if not isinstance(src, str) or not src:
        return None
    try:
        return decode_data_uri(src)
    except ImageDecodeError as e:
        # Keep the source as-is so the project saves back unchanged
        logger.warning(f"Floor plan image could not be decoded: {e}")
        return FloorPlanImage(data_uri=src)


def _parse_shape(kind: ShapeKind, entry: Any, project: ProjectState):
    if not isinstance(entry, dict):
        raise TypeError(f"expected an object, got {type(entry).__name__}")
    default_color = project.default_color(kind)
    if kind is ShapeKind.POLYGON:
        return PolygonShape.from_dict(entry, default_color)
    if kind is ShapeKind.SEGMENT:
        return SegmentShape.from_dict(entry, default_color)
    if kind is ShapeKind.RECTANGLE:
        return RectangleShape.from_dict(entry, default_color)
    if kind is ShapeKind.TEXT:
        return TextShape.from_dict(
            entry,
            default_color,
            project.settings.default_font_size,
            project.settings.default_font_family,
        )
    raise ValueError(f"Unknown shape kind: {kind!r}")


def from_document(data: Dict[str, Any], settings: Optional[Settings] = None) -> ProjectState:
    """
    Build a ProjectState from a project document.

    Args:
        data: Parsed project document
        settings: Optional Settings instance (supplies default colors/fonts)

    Returns:
        A clean (not dirty) ProjectState
    """
    if settings is None:
        settings = get_settings()
    if not isinstance(data, dict):
        raise ValueError(f"Project document must be an object, got {type(data).__name__}")

    project = ProjectState(settings=settings)
    calibration = project.calibration

    for entry in _list_field(data, "calibrationPoints")[:MAX_CALIBRATION_POINTS]:
        try:
            calibration.points.append(Point.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed calibration point {entry!r}: {e}")

    calibration.scale = _scale_field(data)
    calibration.is_scale_set = data.get("isScaleSet") is True
    project.image = _image_field(data)

    for kind, key in COLLECTION_KEYS.items():
        for position, entry in enumerate(_list_field(data, key)):
            try:
                shape = _parse_shape(kind, entry, project)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping {key}[{position}]: {e}")
                continue
            project.shapes.append(shape)

    project.mark_clean()
    logger.info(f"Loaded project with {len(project.shapes)} shapes")
    return project


def dumps(project: ProjectState, indent: Optional[int] = 2) -> str:
    """Serialize a project to a JSON string."""
    return json.dumps(to_document(project), indent=indent, ensure_ascii=False)


def loads(text: str, settings: Optional[Settings] = None) -> ProjectState:
    """
    Parse a project from a JSON string.

    Raises:
        ValueError: If text is not valid JSON or not a JSON object.
    """
    return from_document(json.loads(text), settings=settings)


def save_project(project: ProjectState, path: Union[str, Path]) -> Path:
    """
    Write a project file and clear the unsaved-changes flag.

    Args:
        project: Project to save
        path: Target file; parent directories are created

    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps(project), encoding="utf-8")
    project.mark_clean()
    logger.info(f"Saved project to {path}")
    return path


def load_project(path: Union[str, Path], settings: Optional[Settings] = None) -> ProjectState:
    """
    Read a project file.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: If the file is not a JSON object.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Project file not found: {path}")
    return loads(path.read_text(encoding="utf-8"), settings=settings)
