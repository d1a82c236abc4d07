"""
Pytest configuration and fixtures for PlanMark backend tests.
"""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image
from fastapi.testclient import TestClient

# Add backend to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from planmark.core.config import Settings
from planmark.main import app
from planmark.services.drawing_session import (
    CalibrationRequested,
    DrawingSession,
    PointerDown,
)
from planmark.services.project import ProjectState


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with defaults and a temporary projects directory."""
    return Settings(projects_dir=tmp_path / "projects")


@pytest.fixture
def project(settings) -> ProjectState:
    """An empty, uncalibrated project."""
    return ProjectState(settings=settings)


@pytest.fixture
def session(project) -> DrawingSession:
    """Drawing session over an empty project."""
    return DrawingSession(project=project)


@pytest.fixture
def calibrated_session(session) -> DrawingSession:
    """Session calibrated with (0,0)-(100,0) = 5 m, i.e. 0.05 m/px."""
    session.handle(PointerDown(0, 0))
    session.handle(PointerDown(100, 0))
    session.handle(CalibrationRequested(5.0))
    return session


@pytest.fixture
def fixed_width_measurer():
    """Text measurer with 10px per character and font-size height."""
    return lambda shape: (len(shape.content) * 10.0, shape.font_size)


@pytest.fixture
def png_bytes() -> bytes:
    """A 20x10 PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (20, 10), color=(255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def test_client() -> TestClient:
    """Synchronous test client for API tests."""
    return TestClient(app)
