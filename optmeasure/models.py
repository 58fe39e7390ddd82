"""
数据模型模块 - 定义所有数据类和数据结构
"""
import itertools
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from optmeasure.errors import DecodeError
from optmeasure.utils import distance, ring_pairs


@dataclass(frozen=True)
class Point:
    """图像像素坐标点"""
    x: float
    y: float

    @classmethod
    def of(cls, value) -> 'Point':
        """从 Point、(x, y) 或 {'x':.., 'y':..} 构造"""
        if isinstance(value, Point):
            return value
        if isinstance(value, dict):
            return cls(float(value["x"]), float(value["y"]))
        x, y = value
        return cls(float(x), float(y))

    def distance_to(self, other: 'Point') -> float:
        return distance(self.x, self.y, other.x, other.y)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Edge:
    """多边形相邻顶点构成的边"""
    start: Point
    end: Point
    pixel_length: float
    real_length: Optional[float] = None     # 标定前为 None，单位毫米

    @classmethod
    def between(cls, start: Point, end: Point) -> 'Edge':
        return cls(start=start, end=end, pixel_length=start.distance_to(end))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "pixel_length": float(self.pixel_length),
            "real_length": self.real_length,
        }


def edges_for(points: Tuple[Point, ...]) -> Tuple[Edge, ...]:
    """由闭合多边形顶点生成边（最后一条边回到首点）"""
    if not points:
        return ()
    return tuple(Edge.between(a, b) for a, b in ring_pairs(points))


@dataclass(frozen=True)
class BoundingBox:
    """轴对齐外接矩形(像素)"""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def around(cls, points) -> 'BoundingBox':
        xs = [p.x for p in points]
        ys = [p.y for p in points]
        return cls(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height > 0 else 0.0

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


# ===== 形状变体 =====
@dataclass(frozen=True)
class TracedShape:
    """轮廓追踪得到的形状"""
    points: Tuple[Point, ...]
    edges: Tuple[Edge, ...]
    circularity: float
    aspect_ratio: float

    kind = "traced"


@dataclass(frozen=True)
class ManualShape:
    """用户点击构建的多边形，没有圆度"""
    points: Tuple[Point, ...]
    edges: Tuple[Edge, ...]

    kind = "manual"


@dataclass(frozen=True)
class SyntheticCoin:
    """仅由直径构造的参考硬币，没有边界点"""
    pixel_diameter: float

    kind = "synthetic_coin"
    points: Tuple[Point, ...] = field(default=(), init=False, repr=False)
    edges: Tuple[Edge, ...] = field(default=(), init=False, repr=False)


Shape = Union[TracedShape, ManualShape, SyntheticCoin]


@dataclass(frozen=True)
class EdgeMeasurement:
    pixel_length: float
    real_length: Optional[float]


@dataclass(frozen=True)
class Measurements:
    """对象的测量视图，perimeter 为毫米（未标定时为 None）"""
    edges: Tuple[EdgeMeasurement, ...]
    perimeter: Optional[float]


@dataclass(frozen=True)
class DetectedObject:
    """检测或手动创建的测量对象"""
    id: int
    name: str
    is_coin: bool
    shape: Shape
    bounding_box: BoundingBox
    area: float                             # 像素²
    perimeter: float                        # 像素，各边像素长度之和
    color: str
    real_perimeter: Optional[float] = None  # 毫米

    @property
    def points(self) -> Tuple[Point, ...]:
        return self.shape.points

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self.shape.edges

    @property
    def measurements(self) -> Measurements:
        return Measurements(
            edges=tuple(EdgeMeasurement(e.pixel_length, e.real_length) for e in self.edges),
            perimeter=self.real_perimeter,
        )

    @property
    def is_calibrated(self) -> bool:
        return self.real_perimeter is not None

    def renamed(self, name: str) -> 'DetectedObject':
        """改名，不影响测量结果"""
        return replace(self, name=name)

    def to_dict(self) -> Dict[str, Any]:
        """转换为可 JSON 序列化的字典"""
        data = {
            "id": self.id,
            "name": self.name,
            "kind": self.shape.kind,
            "is_coin": self.is_coin,
            "color": self.color,
            "bounding_box": self.bounding_box.to_dict(),
            "area": float(self.area),
            "perimeter": float(self.perimeter),
            "points": [p.to_dict() for p in self.points],
            "edges": [e.to_dict() for e in self.edges],
            "measurements": {
                "edges": [{"pixel_length": float(m.pixel_length), "real_length": m.real_length}
                          for m in self.measurements.edges],
                "perimeter": self.real_perimeter,
            },
        }
        if isinstance(self.shape, TracedShape):
            data["circularity"] = float(self.shape.circularity)
            data["aspect_ratio"] = float(self.shape.aspect_ratio)
        elif isinstance(self.shape, SyntheticCoin):
            data["pixel_diameter"] = float(self.shape.pixel_diameter)
        return data


@dataclass
class CalibrationState:
    """会话级标定状态"""
    ppm: Optional[float] = None
    coin_pixel_diameter: Optional[float] = None

    @property
    def is_calibrated(self) -> bool:
        return self.ppm is not None

    def reset(self):
        self.ppm = None
        self.coin_pixel_diameter = None


@dataclass(frozen=True)
class CoinDetection:
    """独立硬币检测结果，found=False 表示未找到（不是错误）"""
    found: bool
    pixel_diameter: Optional[float] = None
    center: Optional[Point] = None
    bounding_box: Optional[BoundingBox] = None
    circularity: Optional[float] = None
    method: Optional[str] = None            # "contour" 或 "hough"

    @classmethod
    def not_found(cls) -> 'CoinDetection':
        return cls(found=False)


@dataclass(frozen=True)
class Rejection:
    """被形状分析器丢弃的轮廓"""
    reason: str
    area: float = 0.0


@dataclass(frozen=True)
class ShapeCandidate:
    """通过过滤的轮廓，尚未分配 id/名称/颜色"""
    points: Tuple[Point, ...]
    bounding_box: BoundingBox
    area: float
    perimeter: float
    circularity: float
    aspect_ratio: float
    is_coin: bool
    centroid: Optional[Point] = None


@dataclass
class RawImage:
    """已解码的 RGBA 像素缓冲"""
    width: int
    height: int
    pixels: np.ndarray = field(repr=False)  # HxWx4 uint8

    @classmethod
    def from_array(cls, array) -> 'RawImage':
        """从灰度 / RGB / RGBA 数组构造"""
        pixels = np.asarray(array)
        if pixels.dtype != np.uint8:
            raise DecodeError(f"像素类型必须为 uint8: {pixels.dtype}")
        if pixels.ndim == 2:
            alpha = np.full(pixels.shape, 255, dtype=np.uint8)
            pixels = np.dstack([pixels, pixels, pixels, alpha])
        elif pixels.ndim == 3 and pixels.shape[2] == 3:
            alpha = np.full(pixels.shape[:2], 255, dtype=np.uint8)
            pixels = np.dstack([pixels, alpha])
        elif not (pixels.ndim == 3 and pixels.shape[2] == 4):
            raise DecodeError(f"不支持的像素形状: {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise DecodeError("图像尺寸为空")
        pixels = np.ascontiguousarray(pixels)
        return cls(width=int(pixels.shape[1]), height=int(pixels.shape[0]), pixels=pixels)

    @property
    def area(self) -> int:
        return self.width * self.height


class IdAllocator:
    """会话内唯一且不复用的对象 id"""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


# 未显式传入分配器时共用，保证同一进程内 id 不重复
DEFAULT_IDS = IdAllocator()


def non_coin(objects: List[DetectedObject]) -> List[DetectedObject]:
    return [o for o in objects if not o.is_coin]
