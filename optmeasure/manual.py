"""
手动多边形模块 - 由用户点击的顶点构建测量对象
"""
import logging
from typing import List, Optional, Sequence

from optmeasure.errors import ValidationError
from optmeasure.models import (
    DEFAULT_IDS, BoundingBox, DetectedObject, IdAllocator, ManualShape, Point, edges_for,
)
from optmeasure.utils import (
    MANUAL_CLOSE_RADIUS_PX, MANUAL_MIN_POINTS, palette_color, shoelace_area,
)

logger = logging.getLogger(__name__)


def build_manual_polygon(points: Sequence, ids: Optional[IdAllocator] = None,
                         name: Optional[str] = None,
                         color: Optional[str] = None) -> DetectedObject:
    """由至少3个顶点构建多边形对象

    面积使用鞋带公式，边与周长的计算方式与轮廓检测一致，
    外接框为顶点坐标的最小/最大范围。

    Raises:
        ValidationError: 顶点少于3个
    """
    vertices = tuple(Point.of(p) for p in points)
    if len(vertices) < MANUAL_MIN_POINTS:
        raise ValidationError(f"至少需要 {MANUAL_MIN_POINTS} 个点才能创建对象，当前 {len(vertices)} 个")

    ids = ids or DEFAULT_IDS
    edges = edges_for(vertices)
    object_id = ids.next_id()
    return DetectedObject(
        id=object_id,
        name=name or f"Object {object_id}",
        is_coin=False,
        shape=ManualShape(points=vertices, edges=edges),
        bounding_box=BoundingBox.around(vertices),
        area=shoelace_area([(p.x, p.y) for p in vertices]),
        perimeter=sum(e.pixel_length for e in edges),
        color=color or palette_color(object_id - 1),
    )


class PolygonCollector:
    """交互式收集多边形顶点

    点击点落在首点 close_radius 像素内（且已有至少3个点）时视为闭合，
    丢弃这个闭合点并返回完整顶点列表。
    """

    def __init__(self, close_radius: float = MANUAL_CLOSE_RADIUS_PX):
        self.close_radius = close_radius
        self._points: List[Point] = []

    @property
    def points(self) -> List[Point]:
        return list(self._points)

    def add(self, point) -> Optional[List[Point]]:
        """添加一个点，闭合时返回顶点列表，否则返回 None"""
        point = Point.of(point)
        if len(self._points) >= MANUAL_MIN_POINTS and \
                point.distance_to(self._points[0]) < self.close_radius:
            finished = list(self._points)
            self._points = []
            logger.debug("多边形已闭合: %d 个顶点", len(finished))
            return finished
        self._points.append(point)
        return None

    def undo(self) -> Optional[Point]:
        """撤销最后一个点"""
        return self._points.pop() if self._points else None

    def clear(self):
        self._points = []

    def finish(self) -> List[Point]:
        """显式结束收集

        Raises:
            ValidationError: 顶点少于3个（已收集的点会被清空）
        """
        finished = list(self._points)
        self._points = []
        if len(finished) < MANUAL_MIN_POINTS:
            raise ValidationError(f"至少需要 {MANUAL_MIN_POINTS} 个点才能创建对象，当前 {len(finished)} 个")
        return finished
