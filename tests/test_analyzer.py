"""形状分析器与检测入口的测试（合成场景，不依赖真实照片）。"""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from conftest import DARK, blank_canvas
from optmeasure.analyzer_core import MeasureAnalyzer, ShapeAnalyzer, coin_pixel_diameter, detect
from optmeasure.config import DetectionConfig, get_preset
from optmeasure.contours import ContourExtractor
from optmeasure.manual import build_manual_polygon
from optmeasure.models import CoinDetection, Point, RawImage, Rejection, ShapeCandidate, TracedShape

IMAGE_SIZE = (500, 500)


def _box(x0, y0, x1, y1):
    return np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.int32)


@pytest.fixture
def shapes():
    return ShapeAnalyzer(cv2, DetectionConfig())


def test_contour_touching_border_is_rejected(shapes):
    result = shapes.analyze(_box(0, 50, 100, 150), IMAGE_SIZE)
    assert isinstance(result, Rejection)
    assert result.reason == "touches_border"


@pytest.mark.parametrize("contour, reason", [
    (_box(100, 100, 120, 120), "area_below_min"),
    (_box(20, 20, 470, 470), "area_above_max"),
    (_box(100, 100, 300, 120), "too_small"),
])
def test_filter_reasons(shapes, contour, reason):
    result = shapes.analyze(contour, IMAGE_SIZE)
    assert isinstance(result, Rejection)
    assert result.reason == reason


def test_square_candidate(shapes):
    result = shapes.analyze(_box(200, 200, 300, 300), IMAGE_SIZE)

    assert isinstance(result, ShapeCandidate)
    assert len(result.points) == 4
    assert result.perimeter == pytest.approx(400.0)
    assert result.circularity == pytest.approx(np.pi / 4, rel=1e-3)
    assert result.aspect_ratio == pytest.approx(1.0)
    assert result.centroid.distance_to(Point(250.0, 250.0)) < 1e-6


def test_elongated_shape_is_not_coin(shapes):
    result = shapes.analyze(_box(100, 100, 260, 180), IMAGE_SIZE)
    assert isinstance(result, ShapeCandidate)
    assert not result.is_coin


def test_analysis_error_becomes_rejection(shapes, monkeypatch):
    def broken(contour):
        raise ValueError("bad contour")

    monkeypatch.setattr(shapes, "simplify", broken)
    result = shapes.analyze(_box(200, 200, 300, 300), IMAGE_SIZE)
    assert isinstance(result, Rejection)
    assert result.reason.startswith("error:")


@pytest.mark.parametrize("preset", ["edges", "otsu", "adaptive"])
def test_detect_scene(scene, gate, preset):
    analyzer = MeasureAnalyzer(get_preset(preset), gate=gate)
    objects = analyzer.detect(scene)

    assert len(objects) == 2
    coin, rect = objects
    assert coin.is_coin and coin.name == "Coin"
    assert isinstance(coin.shape, TracedShape)
    assert coin_pixel_diameter(coin) == pytest.approx(121, abs=4)

    assert not rect.is_coin and rect.name == "Object 1"
    assert len(rect.points) >= 4
    assert rect.perimeter == pytest.approx(480, rel=0.05)
    assert rect.real_perimeter is None
    assert all(e.real_length is None for e in rect.edges)
    assert coin.id != rect.id


def test_detect_scene_without_coin(scene_without_coin, gate):
    objects = MeasureAnalyzer(gate=gate).detect(scene_without_coin)
    assert [o.is_coin for o in objects] == [False]


def test_detect_blank_image(blank_scene, gate):
    analyzer = MeasureAnalyzer(gate=gate)
    assert analyzer.detect(blank_scene) == []
    assert analyzer.last_rejections == []


def test_detect_with_known_coin_region_excluded(scene, gate):
    known = CoinDetection(found=True, pixel_diameter=121.0, center=Point(150, 150))
    objects = MeasureAnalyzer(gate=gate).detect(scene, exclude_coin=known)
    assert len(objects) == 1
    assert not objects[0].is_coin


def test_detect_coin_only_finds_coin(scene, gate):
    detection = MeasureAnalyzer(gate=gate).detect_coin_only(scene)

    assert detection.found
    assert detection.method == "contour"
    assert detection.pixel_diameter == pytest.approx(121, abs=4)
    assert detection.center.distance_to(Point(150, 150)) < 3


def test_detect_coin_only_not_found(scene_without_coin, gate):
    detection = MeasureAnalyzer(gate=gate).detect_coin_only(scene_without_coin)
    assert not detection.found
    assert detection.pixel_diameter is None


def test_coin_near_border_needs_hough_fallback(gate):
    canvas = blank_canvas()
    cv2.circle(canvas, (60, 250), 55, DARK, -1)
    image = RawImage.from_array(canvas)

    assert not MeasureAnalyzer(get_preset("edges"), gate=gate).detect_coin_only(image).found

    detection = MeasureAnalyzer(get_preset("hough"), gate=gate).detect_coin_only(image)
    assert detection.found
    assert detection.method == "hough"
    assert detection.pixel_diameter > 0


@pytest.mark.parametrize("radius", [30, 45, 60, 90])
def test_traced_circle_circularity_is_bounded(gate, radius):
    canvas = blank_canvas()
    cv2.circle(canvas, (250, 250), radius, DARK, -1)

    objects = MeasureAnalyzer(gate=gate).detect(RawImage.from_array(canvas))

    assert len(objects) == 1
    coin = objects[0]
    assert coin.is_coin
    assert 0 < coin.shape.circularity <= 1.2


def test_bad_contour_does_not_stop_the_pass(blank_scene, gate, monkeypatch):
    triangle = np.array([[100, 100], [200, 100], [150, 200]], dtype=np.int32)
    square = _box(300, 300, 400, 400)
    simplify = ShapeAnalyzer.simplify

    def fail_on_triangle(self, contour):
        if len(contour) == 3:
            raise ValueError("degenerate contour")
        return simplify(self, contour)

    monkeypatch.setattr(ContourExtractor, "extract", lambda self, mask: [triangle, square])
    monkeypatch.setattr(ShapeAnalyzer, "simplify", fail_on_triangle)

    analyzer = MeasureAnalyzer(gate=gate)
    candidates = analyzer.find_candidates(blank_scene, analyzer.config)

    assert len(candidates) == 1
    assert candidates[0].bounding_box.x == 300
    assert len(analyzer.last_rejections) == 1
    assert analyzer.last_rejections[0].reason.startswith("error:")


def test_public_helpers_never_reuse_ids(scene, gate):
    objects = detect(scene, gate=gate)
    square = [(10, 10), (50, 10), (50, 50), (10, 50)]
    manual = [build_manual_polygon(square), build_manual_polygon(square)]

    ids = [o.id for o in objects + manual]
    assert len(ids) == 4
    assert len(set(ids)) == 4
