"""
Projects API Router

HTTP surface over the measurement engine. Each project lives in a
process-local store together with its drawing session; clients feed it
input events and read back shapes, previews and measurements.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional
import logging
import uuid

from fastapi import APIRouter, Body, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from ..core.config import get_settings
from ..core.errors import ImageDecodeError, MeasurementError, ShapeNotFoundError
from ..services.drawing_session import (
    CalibrationRequested,
    DrawingMode,
    DrawingSession,
    FinalizeRequested,
    ModeChanged,
    PointerDown,
    PointerMoved,
    ResetRequested,
    UndoRequested,
)
from ..services.geometry import Point
from ..services.hit_testing import select_at
from ..services.image_loader import decode_image
from ..services.project import ProjectState
from ..services.project_io import (
    PROJECT_FILE_SUFFIX,
    from_document,
    load_project,
    save_project,
    to_document,
)
from ..services.shapes import ShapeKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])


@dataclass
class ProjectRecord:
    """A stored project and its transient drawing session."""

    project_id: str
    project: ProjectState
    session: DrawingSession


_projects: Dict[str, ProjectRecord] = {}


def _register(project: ProjectState) -> ProjectRecord:
    project_id = uuid.uuid4().hex
    record = ProjectRecord(
        project_id=project_id,
        project=project,
        session=DrawingSession(project=project),
    )
    _projects[project_id] = record
    logger.info(f"Registered project {project_id}")
    return record


def _get_record(project_id: str) -> ProjectRecord:
    record = _projects.get(project_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return record


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, ShapeNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _project_file(filename: str) -> Path:
    """Resolve a bare project filename inside the configured projects directory."""
    if not filename or Path(filename).name != filename or filename.startswith("."):
        raise HTTPException(status_code=400, detail=f"Invalid project filename: {filename!r}")
    if not filename.endswith(PROJECT_FILE_SUFFIX):
        filename += PROJECT_FILE_SUFFIX
    return get_settings().projects_dir / filename


# ============================================
# Request Models
# ============================================


class PointModel(BaseModel):
    """A point in image-pixel coordinates."""

    x: float
    y: float

    @classmethod
    def from_point(cls, point: Point) -> "PointModel":
        return cls(x=point.x, y=point.y)


class InputEventRequest(BaseModel):
    """One input event for the drawing session."""

    type: Literal[
        "pointer_down",
        "pointer_moved",
        "mode_changed",
        "finalize",
        "undo",
        "reset",
    ] = Field(description="Event kind")
    x: Optional[float] = Field(default=None, description="Pointer x in image pixels")
    y: Optional[float] = Field(default=None, description="Pointer y in image pixels")
    snap: bool = Field(default=False, description="Snap to the nearest 45° direction")
    stepped: bool = Field(default=False, description="Preview as a horizontal-then-vertical path")
    mode: Optional[DrawingMode] = Field(default=None, description="New mode for mode_changed")
    text: Optional[str] = Field(default=None, description="Label content for a text-mode click")


class CalibrateRequest(BaseModel):
    """Known real-world length of the calibration segment."""

    known_distance_m: float = Field(gt=0, description="Reference length in meters")


class LocateRequest(BaseModel):
    """Hit-test request."""

    x: float
    y: float
    select: bool = Field(default=True, description="Store the hit as the project's selection")


class UpdateShapeRequest(BaseModel):
    """Display attribute changes for one shape."""

    color: Optional[str] = None
    show_label: Optional[bool] = Field(default=None, description="Show the area/length label")
    content: Optional[str] = Field(default=None, description="Text content (text only)")
    font_size: Optional[float] = Field(default=None, gt=0, description="Font size (text only)")
    font_family: Optional[str] = Field(default=None, description="Font family (text only)")


class ProjectFileRequest(BaseModel):
    """Project file name inside the projects directory."""

    filename: str = Field(min_length=1)


# ============================================
# Response Models
# ============================================


class SelectionResponse(BaseModel):
    kind: ShapeKind
    index: int


class ProjectStateResponse(BaseModel):
    """Snapshot of a project and its drawing session."""

    project_id: str
    dirty: bool
    is_scale_set: bool
    scale: float
    calibration_points: List[PointModel]
    image: Optional[Dict[str, Any]] = None
    mode: DrawingMode
    in_progress_points: List[PointModel]
    preview: Optional[Dict[str, Any]] = None
    selection: Optional[SelectionResponse] = None
    shape_counts: Dict[str, int]
    committed: Optional[SelectionResponse] = None

    @classmethod
    def from_record(cls, record: ProjectRecord, committed=None) -> "ProjectStateResponse":
        project = record.project
        session = record.session
        selected = project.selection if project.selected_shape() is not None else None
        preview = session.preview()
        return cls(
            project_id=record.project_id,
            dirty=project.dirty,
            is_scale_set=project.calibration.is_scale_set,
            scale=project.calibration.scale,
            calibration_points=[PointModel.from_point(p) for p in project.calibration.points],
            image=project.image.to_dict() if project.image else None,
            mode=session.mode,
            in_progress_points=[PointModel.from_point(p) for p in session.in_progress_points],
            preview=preview.to_dict() if preview else None,
            selection=SelectionResponse(kind=selected.kind, index=selected.index) if selected else None,
            shape_counts={kind.value: len(project.shapes.items(kind)) for kind in ShapeKind},
            committed=SelectionResponse(kind=committed.kind, index=committed.index) if committed else None,
        )


class LocateResponse(BaseModel):
    hit: Optional[SelectionResponse] = None


class ProjectFileResponse(BaseModel):
    project_id: str
    path: str


# ============================================
# Project Endpoints
# ============================================


@router.post("", response_model=ProjectStateResponse)
async def create_project(
    image: Optional[UploadFile] = File(default=None, description="Floor plan raster image"),
):
    """
    Create an empty project, optionally with a floor plan image.

    The project starts uncalibrated: the first two clicks place the
    calibration reference.
    """
    settings = get_settings()
    project = ProjectState(settings=settings)

    if image is not None:
        try:
            project.image = decode_image(await image.read(), max_bytes=settings.max_image_bytes)
        except ImageDecodeError as e:
            raise HTTPException(status_code=400, detail=str(e))

    return ProjectStateResponse.from_record(_register(project))


@router.get("/{project_id}", response_model=ProjectStateResponse)
async def get_project(project_id: str):
    """Current state of a project and its drawing session."""
    return ProjectStateResponse.from_record(_get_record(project_id))


@router.delete("/{project_id}")
async def delete_project(project_id: str):
    """Drop a project from the store. Unsaved changes are lost."""
    record = _get_record(project_id)
    del _projects[project_id]
    return {"project_id": project_id, "deleted": True, "had_unsaved_changes": record.project.dirty}


@router.put("/{project_id}/image", response_model=ProjectStateResponse)
async def replace_image(
    project_id: str,
    image: UploadFile = File(..., description="Floor plan raster image"),
):
    """Replace the floor plan image. Shapes and calibration are kept."""
    record = _get_record(project_id)
    settings = get_settings()
    try:
        record.project.set_image(decode_image(await image.read(), max_bytes=settings.max_image_bytes))
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProjectStateResponse.from_record(record)


# ============================================
# Drawing Endpoints
# ============================================


@router.post("/{project_id}/events", response_model=ProjectStateResponse)
async def post_event(project_id: str, request: InputEventRequest):
    """
    Feed one input event to the project's drawing session.

    Returns the updated state; `committed` is set when the event finished a shape.
    """
    record = _get_record(project_id)
    session = record.session

    if request.type in ("pointer_down", "pointer_moved") and (request.x is None or request.y is None):
        raise HTTPException(status_code=400, detail=f"{request.type} requires x and y")
    if request.type == "mode_changed" and request.mode is None:
        raise HTTPException(status_code=400, detail="mode_changed requires mode")

    if request.type == "pointer_down":
        event = PointerDown(request.x, request.y, snap=request.snap)
    elif request.type == "pointer_moved":
        event = PointerMoved(request.x, request.y, snap=request.snap, stepped=request.stepped)
    elif request.type == "mode_changed":
        event = ModeChanged(request.mode)
    elif request.type == "finalize":
        event = FinalizeRequested()
    elif request.type == "undo":
        event = UndoRequested()
    else:
        event = ResetRequested()

    session.text_prompt = lambda _point: request.text
    try:
        committed = session.handle(event)
    except MeasurementError as e:
        raise _to_http_error(e)
    finally:
        session.text_prompt = None

    return ProjectStateResponse.from_record(record, committed=committed)


@router.post("/{project_id}/calibrate", response_model=ProjectStateResponse)
async def calibrate(project_id: str, request: CalibrateRequest):
    """Set the scale from the two placed calibration points and a known length."""
    record = _get_record(project_id)
    try:
        record.session.handle(CalibrationRequested(request.known_distance_m))
    except MeasurementError as e:
        raise _to_http_error(e)
    return ProjectStateResponse.from_record(record)


@router.post("/{project_id}/locate", response_model=LocateResponse)
async def locate_shape(project_id: str, request: LocateRequest):
    """Find the topmost shape at a pixel coordinate."""
    record = _get_record(project_id)
    project = record.project
    previous = project.selection
    hit = select_at(project, Point(request.x, request.y))
    if not request.select:
        project.selection = previous
    if hit is None:
        return LocateResponse()
    return LocateResponse(hit=SelectionResponse(kind=hit.kind, index=hit.index))


# ============================================
# Shape Endpoints
# ============================================


@router.get("/{project_id}/shapes/{kind}")
async def list_shapes(project_id: str, kind: ShapeKind):
    """Shapes of one kind in insertion (z) order, in document form."""
    record = _get_record(project_id)
    return [shape.to_dict() for shape in record.project.shapes.items(kind)]


@router.patch("/{project_id}/shapes/{kind}/{index}")
async def update_shape(project_id: str, kind: ShapeKind, index: int, request: UpdateShapeRequest):
    """Change color, label visibility, or text attributes of a shape."""
    record = _get_record(project_id)
    try:
        shape = record.project.update_shape(
            kind,
            index,
            color=request.color,
            show_label=request.show_label,
            content=request.content,
            font_size=request.font_size,
            font_family=request.font_family,
        )
    except (MeasurementError, ValueError) as e:
        raise _to_http_error(e)
    return shape.to_dict()


@router.delete("/{project_id}/shapes/{kind}/{index}", response_model=ProjectStateResponse)
async def delete_shape(project_id: str, kind: ShapeKind, index: int):
    """Delete a shape; later shapes of the same kind move down one index."""
    record = _get_record(project_id)
    try:
        record.project.delete_shape(kind, index)
    except MeasurementError as e:
        raise _to_http_error(e)
    return ProjectStateResponse.from_record(record)


@router.get("/{project_id}/measurements")
async def get_measurements(project_id: str):
    """Lengths, areas and labels of every shape in meters."""
    project = _get_record(project_id).project
    return {
        "is_scale_set": project.calibration.is_scale_set,
        "scale": project.calibration.scale,
        "measurements": [m.to_dict() for m in project.shapes.measurements(project.calibration)],
    }


# ============================================
# Document Endpoints
# ============================================


@router.get("/{project_id}/document")
async def export_document(project_id: str):
    """The project as a persisted-format document."""
    return to_document(_get_record(project_id).project)


@router.post("/import", response_model=ProjectStateResponse)
async def import_document(document: Dict[str, Any] = Body(...)):
    """Create a project from a document. Missing fields are defaulted."""
    project = from_document(document, settings=get_settings())
    return ProjectStateResponse.from_record(_register(project))


@router.post("/{project_id}/save", response_model=ProjectFileResponse)
async def save_project_file(project_id: str, request: ProjectFileRequest):
    """Write the project to the projects directory and clear its unsaved flag."""
    record = _get_record(project_id)
    path = _project_file(request.filename)
    save_project(record.project, path)
    return ProjectFileResponse(project_id=project_id, path=str(path))


@router.post("/load", response_model=ProjectStateResponse)
async def load_project_file(request: ProjectFileRequest):
    """Open a project file from the projects directory as a new project."""
    path = _project_file(request.filename)
    try:
        project = load_project(path, settings=get_settings())
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProjectStateResponse.from_record(_register(project))
