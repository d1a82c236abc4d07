"""
Tests for project document serialization and project files.

Test philosophy:
- A saved project loads back to the same document
- Loading never rejects a document for a bad entry; it skips and warns
- Missing fields fall back to defaults
"""

import json
import logging

import pytest
from PIL import Image

from planmark.services.geometry import Point
from planmark.services.hit_testing import locate
from planmark.services.image_loader import decode_image
from planmark.services.project_io import (
    dumps,
    from_document,
    load_project,
    loads,
    save_project,
    to_document,
)
from planmark.services.shapes import (
    PolygonShape,
    RectangleShape,
    SegmentShape,
    ShapeKind,
    TextShape,
)


@pytest.fixture
def populated(project):
    project.calibration.add_point(Point(0, 0))
    project.calibration.add_point(Point(100, 0))
    project.calibration.set_scale(5.0)
    project.commit_shape(
        PolygonShape(points=[Point(0, 0), Point(10, 0), Point(0, 10)], color="#ff0000")
    )
    project.commit_shape(
        SegmentShape(points=[Point(1, 2), Point(3, 4)], color="#0000ff", show_length=False)
    )
    project.commit_shape(
        RectangleShape(
            points=[Point(0, 0), Point(4, 0), Point(4, 3), Point(0, 3)],
            color="#00aa00",
        )
    )
    project.commit_shape(
        TextShape(
            anchor=Point(7, 8),
            content="Küche",
            color="#000000",
            font_size=18,
            font_family="Verdana",
        )
    )
    return project


class TestToDocument:
    """Tests for building the persisted document."""

    def test_document_keys(self, populated):
        document = to_document(populated)
        assert set(document) == {
            "calibrationPoints",
            "isScaleSet",
            "scale",
            "floorPlanImageSrc",
            "polygons",
            "segments",
            "rectangles",
            "texts",
        }
        assert document["isScaleSet"] is True
        assert document["scale"] == pytest.approx(0.05)
        assert document["floorPlanImageSrc"] is None
        assert document["segments"][0]["showLength"] is False
        assert document["texts"][0]["text"] == "Küche"

    def test_empty_project(self, project):
        document = to_document(project)
        assert document["calibrationPoints"] == []
        assert document["isScaleSet"] is False
        assert document["scale"] == 1.0
        assert document["polygons"] == []

    def test_dumps_is_json(self, populated):
        assert json.loads(dumps(populated)) == to_document(populated)


class TestRoundTrip:
    """Saving then loading reproduces the document."""

    def test_round_trip(self, populated, settings):
        document = to_document(populated)
        loaded = from_document(json.loads(json.dumps(document)), settings=settings)
        assert to_document(loaded) == document

    def test_loaded_project_is_clean(self, populated, settings):
        loaded = loads(dumps(populated), settings=settings)
        assert loaded.dirty is False
        assert loaded.selection is None

    def test_loaded_shapes_measure_the_same(self, populated, settings):
        loaded = loads(dumps(populated), settings=settings)
        before = [m.to_dict() for m in populated.shapes.measurements(populated.calibration)]
        after = [m.to_dict() for m in loaded.shapes.measurements(loaded.calibration)]
        assert after == before

    def test_image_round_trip(self, project, settings, png_bytes):
        project.set_image(decode_image(png_bytes))
        loaded = loads(dumps(project), settings=settings)
        assert loaded.image.data_uri == project.image.data_uri
        assert (loaded.image.width, loaded.image.height) == (20, 10)

    def test_sparse_document_is_stable(self, settings):
        """Defaulted fields serialize the same way on every pass."""
        sparse = {
            "calibrationPoints": [{"x": 0, "y": 0}, {"x": 100, "y": 0}],
            "isScaleSet": True,
            "polygons": [{"points": [{"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 0, "y": 10}]}],
            "segments": [{"points": [{"x": 0, "y": 0}, {"x": 5, "y": 5}]}],
            "rectangles": [
                {"points": [{"x": 0, "y": 0}, {"x": 4, "y": 0}, {"x": 4, "y": 3}, {"x": 0, "y": 3}]}
            ],
            "texts": [{"x": 1, "y": 2, "text": "Hall"}],
        }
        first = dumps(from_document(sparse, settings=settings))
        second = dumps(loads(first, settings=settings))
        third = dumps(loads(second, settings=settings))

        assert second == first
        assert third == first

        document = json.loads(first)
        assert document["scale"] == 1.0
        assert document["polygons"][0]["color"] == settings.polygon_color
        assert document["polygons"][0]["showArea"] is True
        assert document["segments"][0]["showLength"] is True
        assert document["rectangles"][0]["showArea"] is True
        assert document["texts"][0]["fontSize"] == settings.default_font_size
        assert document["texts"][0]["fontFamily"] == settings.default_font_family


class TestPermissiveLoading:
    """Malformed input falls back to defaults instead of failing."""

    def test_empty_document_gives_defaults(self, settings):
        project = from_document({}, settings=settings)
        assert project.calibration.points == []
        assert project.calibration.is_scale_set is False
        assert project.calibration.scale == 1.0
        assert project.image is None
        assert len(project.shapes) == 0

    def test_missing_color_uses_default(self, settings):
        project = from_document(
            {"segments": [{"points": [{"x": 0, "y": 0}, {"x": 1, "y": 1}]}]},
            settings=settings,
        )
        segment = project.shapes.get(ShapeKind.SEGMENT, 0)
        assert segment.color == settings.segment_color
        assert segment.show_length is True

    def test_missing_font_uses_defaults(self, settings):
        project = from_document({"texts": [{"x": 1, "y": 2, "text": "A"}]}, settings=settings)
        text = project.shapes.get(ShapeKind.TEXT, 0)
        assert text.font_size == settings.default_font_size
        assert text.font_family == settings.default_font_family
        assert text.color == settings.text_color

    def test_malformed_entries_are_skipped(self, settings, caplog):
        document = {
            "polygons": [
                {"points": [{"x": 0, "y": 0}, {"x": 1, "y": 0}]},
                "not a polygon",
                {"points": [{"x": 0, "y": 0}, {"x": 1, "y": 0}, {"x": 0, "y": 1}]},
            ],
            "rectangles": [{"points": [{"x": 0}]}],
            "texts": [{"text": "no anchor"}],
        }
        with caplog.at_level(logging.WARNING):
            project = from_document(document, settings=settings)

        assert len(project.shapes.items(ShapeKind.POLYGON)) == 1
        assert project.shapes.items(ShapeKind.RECTANGLE) == []
        assert project.shapes.items(ShapeKind.TEXT) == []
        assert "Skipping polygons[0]" in caplog.text
        assert "Skipping polygons[1]" in caplog.text

    def test_non_list_collection_is_ignored(self, settings):
        project = from_document({"segments": {"points": []}}, settings=settings)
        assert len(project.shapes) == 0

    def test_extra_calibration_points_are_truncated(self, settings):
        points = [{"x": i, "y": i} for i in range(4)]
        project = from_document({"calibrationPoints": points}, settings=settings)
        assert project.calibration.points == [Point(0, 0), Point(1, 1)]

    @pytest.mark.parametrize("scale", [0, -1, "big", None, True])
    def test_invalid_scale_defaults(self, settings, scale):
        project = from_document({"scale": scale}, settings=settings)
        assert project.calibration.scale == 1.0

    def test_is_scale_set_must_be_true(self, settings):
        project = from_document({"isScaleSet": "yes"}, settings=settings)
        assert project.calibration.is_scale_set is False

    def test_undecodable_image_is_kept(self, settings):
        src = "data:image/png;base64,bm90IGFuIGltYWdl"
        project = from_document({"floorPlanImageSrc": src}, settings=settings)
        assert project.image.data_uri == src
        assert project.image.is_decoded is False
        assert to_document(project)["floorPlanImageSrc"] == src

    @pytest.mark.parametrize("family", [["Arial"], 12])
    def test_bad_font_family_is_defaulted_and_locatable(self, settings, family):
        document = {"texts": [{"x": 0, "y": 20, "text": "Hi", "fontFamily": family}]}
        project = from_document(document, settings=settings)

        text = project.shapes.get(ShapeKind.TEXT, 0)
        assert text.font_family == settings.default_font_family

        hit = locate(project.shapes, Point(2, 15))
        assert hit.kind is ShapeKind.TEXT

    def test_bad_colors_are_defaulted(self, settings):
        document = {
            "segments": [{"points": [{"x": 0, "y": 0}, {"x": 1, "y": 1}], "color": 42}],
            "texts": [{"x": 1, "y": 2, "text": "A", "color": ["#fff"]}],
        }
        project = from_document(document, settings=settings)
        assert project.shapes.get(ShapeKind.SEGMENT, 0).color == settings.segment_color
        assert project.shapes.get(ShapeKind.TEXT, 0).color == settings.text_color

    def test_string_label_flag_is_defaulted(self, settings):
        document = {
            "polygons": [
                {
                    "points": [{"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 0, "y": 10}],
                    "showArea": "false",
                }
            ]
        }
        project = from_document(document, settings=settings)
        assert project.shapes.get(ShapeKind.POLYGON, 0).show_area is True

    def test_oversized_image_is_kept(self, settings, png_bytes, monkeypatch):
        src = decode_image(png_bytes).data_uri
        # 20x10 is over twice this limit, so Pillow refuses to open it
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 50)

        project = from_document({"floorPlanImageSrc": src}, settings=settings)

        assert project.image.data_uri == src
        assert project.image.is_decoded is False

    def test_non_object_document(self, settings):
        with pytest.raises(ValueError):
            from_document([1, 2, 3], settings=settings)

    def test_invalid_json(self, settings):
        with pytest.raises(ValueError):
            loads("{not json", settings=settings)


class TestProjectFiles:
    """Tests for saving and loading project files."""

    def test_save_and_load(self, populated, settings, tmp_path):
        path = save_project(populated, tmp_path / "nested" / "plan.json")
        assert path.exists()
        assert populated.dirty is False

        loaded = load_project(path, settings=settings)
        assert to_document(loaded) == to_document(populated)

    def test_save_preserves_unicode(self, populated, tmp_path):
        path = save_project(populated, tmp_path / "plan.json")
        assert "Küche" in path.read_text(encoding="utf-8")

    def test_load_missing_file(self, settings, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_project(tmp_path / "missing.json", settings=settings)
