"""
Project state.

One ProjectState holds everything an annotation project owns: the floor
plan image, the calibration, the shape registry, the current selection and
the unsaved-changes flag. Operations receive it explicitly.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from ..core.config import Settings, get_settings
from ..core.errors import MissingScale
from .image_loader import FloorPlanImage
from .scale_calibration import CalibrationState
from .shapes import Selection, Shape, ShapeKind, ShapeRegistry

logger = logging.getLogger(__name__)


@dataclass
class ProjectState:
    """Mutable application state of a single project."""

    calibration: CalibrationState = field(default_factory=CalibrationState)
    shapes: ShapeRegistry = field(default_factory=ShapeRegistry)
    image: Optional[FloorPlanImage] = None
    selection: Optional[Selection] = None
    dirty: bool = False
    settings: Settings = field(default_factory=get_settings, repr=False)

    def default_color(self, kind: ShapeKind) -> str:
        """Configured default color for a shape kind."""
        return {
            ShapeKind.POLYGON: self.settings.polygon_color,
            ShapeKind.SEGMENT: self.settings.segment_color,
            ShapeKind.RECTANGLE: self.settings.rectangle_color,
            ShapeKind.TEXT: self.settings.text_color,
        }[kind]

    def mark_dirty(self) -> None:
        self.dirty = True

    def mark_clean(self) -> None:
        self.dirty = False

    def set_image(self, image: Optional[FloorPlanImage]) -> None:
        self.image = image
        self.mark_dirty()

    def commit_shape(self, shape: Shape) -> Selection:
        """
        Append a finalized shape.

        Raises:
            MissingScale: If the project is not calibrated yet.
        """
        if not self.calibration.is_scale_set:
            raise MissingScale("Set the scale before drawing shapes")
        selection = self.shapes.append(shape)
        self.mark_dirty()
        logger.info(f"Committed {shape.kind.value} #{selection.index}")
        return selection

    def select(self, kind: ShapeKind, index: int) -> Selection:
        self.selection = self.shapes.selection_for(kind, index)
        return self.selection

    def clear_selection(self) -> None:
        self.selection = None

    def selected_shape(self) -> Optional[Shape]:
        """The selected shape, or None (a stale selection is cleared)."""
        if self.selection is None:
            return None
        shape = self.shapes.resolve(self.selection)
        if shape is None:
            logger.debug("Dropping stale selection")
            self.selection = None
        return shape

    def delete_shape(self, kind: ShapeKind, index: int) -> Shape:
        """
        Delete a shape and keep the selection pointing at the same shape.

        A selection of the deleted shape is cleared; a selection of a later
        shape of the same kind moves down one index.

        Raises:
            ShapeNotFoundError: If index is out of range.
        """
        selection = self.selection
        # Resolve before the collection's generation changes
        still_valid = selection is not None and self.shapes.resolve(selection) is not None

        shape = self.shapes.delete(kind, index)
        self.mark_dirty()

        if selection is None or selection.kind is not kind:
            return shape

        if not still_valid or selection.index == index:
            self.selection = None
        elif selection.index > index:
            self.selection = self.shapes.selection_for(kind, selection.index - 1)
        else:
            self.selection = self.shapes.selection_for(kind, selection.index)
        return shape

    def update_shape(self, kind: ShapeKind, index: int, **attributes) -> Shape:
        """Change display attributes; see ShapeRegistry.update."""
        shape = self.shapes.update(kind, index, **attributes)
        self.mark_dirty()
        return shape

    def reset(self) -> None:
        """Clear calibration, shapes and selection. The image is kept."""
        self.calibration.reset()
        self.shapes.clear()
        self.selection = None
        self.mark_dirty()
        logger.info("Project reset")
