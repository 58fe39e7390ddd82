"""手动多边形：鞋带面积、闭合点击与顶点数校验。"""

from __future__ import annotations

import pytest

from optmeasure.errors import ValidationError
from optmeasure.manual import PolygonCollector, build_manual_polygon
from optmeasure.models import BoundingBox, IdAllocator, ManualShape, Point


def test_square_area_perimeter_edges():
    obj = build_manual_polygon([(0, 0), (10, 0), (10, 10), (0, 10)], IdAllocator())

    assert obj.area == 100
    assert obj.perimeter == 40
    assert [e.pixel_length for e in obj.edges] == [10, 10, 10, 10]
    assert obj.edges[-1].start == Point(0, 10) and obj.edges[-1].end == Point(0, 0)
    assert obj.bounding_box == BoundingBox(0, 0, 10, 10)
    assert isinstance(obj.shape, ManualShape)
    assert not obj.is_coin


def test_clockwise_and_counter_clockwise_give_same_area():
    cw = build_manual_polygon([(0, 0), (0, 10), (20, 10), (20, 0)], IdAllocator())
    ccw = build_manual_polygon([(0, 0), (20, 0), (20, 10), (0, 10)], IdAllocator())
    assert cw.area == ccw.area == 200


def test_two_points_are_rejected():
    ids = IdAllocator()
    with pytest.raises(ValidationError):
        build_manual_polygon([(0, 0), (10, 0)], ids)
    # 失败时不消耗 id
    assert ids.next_id() == 1


def test_closing_click_finishes_polygon():
    collector = PolygonCollector()
    finished = None
    for p in [(0, 0), (50, 0), (50, 50), (0, 50), (2, 1)]:
        finished = collector.add(p)

    assert finished == [Point(0, 0), Point(50, 0), Point(50, 50), Point(0, 50)]
    assert collector.points == []

    obj = build_manual_polygon(finished, IdAllocator())
    assert len(obj.points) == 4
    assert obj.area == 2500


def test_close_radius_needs_three_points_first():
    collector = PolygonCollector()
    assert collector.add((0, 0)) is None
    assert collector.add((40, 0)) is None
    # 只有两个点时，靠近首点的点按普通点加入
    assert collector.add((3, 3)) is None
    assert len(collector.points) == 3


def test_far_point_does_not_close():
    collector = PolygonCollector(close_radius=10)
    for p in [(0, 0), (50, 0), (50, 50)]:
        collector.add(p)
    assert collector.add((10, 0)) is None
    assert len(collector.points) == 4


def test_undo_and_finish():
    collector = PolygonCollector()
    for p in [(0, 0), (30, 0), (30, 30), (99, 99)]:
        collector.add(p)
    assert collector.undo() == Point(99, 99)
    assert collector.finish() == [Point(0, 0), Point(30, 0), Point(30, 30)]

    collector.add((1, 1))
    with pytest.raises(ValidationError):
        collector.finish()
    assert collector.points == []
