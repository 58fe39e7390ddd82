"""
图像分析核心模块 - 形状分析器与检测入口 MeasureAnalyzer
"""
import logging
from typing import List, Optional, Tuple, Union

import numpy as np

from optmeasure.config import DetectionConfig, get_preset
from optmeasure.contours import ContourExtractor
from optmeasure.models import (
    DEFAULT_IDS, BoundingBox, CoinDetection, DetectedObject, IdAllocator, Point, RawImage,
    Rejection, ShapeCandidate, TracedShape, edges_for,
)
from optmeasure.preprocess import Preprocessor
from optmeasure.runtime import RuntimeGate
from optmeasure.utils import (
    COIN_DETECTED_NAME, circularity, odd_kernel, palette_color, scoped_buffers,
)

logger = logging.getLogger(__name__)

# 逼近结果少于3个顶点时，逐次缩小容差的次数
_SIMPLIFY_RETRIES = 4


class ShapeAnalyzer:
    """对单个原始轮廓做过滤、简化与分类"""

    def __init__(self, cv, config: DetectionConfig):
        self._cv = cv
        self.config = config

    def analyze(self, contour: np.ndarray,
                image_size: Tuple[int, int]) -> Union[ShapeCandidate, Rejection]:
        """分析单个轮廓，处理过程中的异常视为该轮廓被拒绝"""
        try:
            return self._analyze(contour, image_size)
        except (self._cv.error, ValueError, ZeroDivisionError) as e:
            logger.debug("轮廓分析失败，已跳过: %s", e)
            return Rejection(reason=f"error: {e}")

    def _analyze(self, contour: np.ndarray,
                 image_size: Tuple[int, int]) -> Union[ShapeCandidate, Rejection]:
        cv = self._cv
        cfg = self.config
        width, height = image_size
        image_area = float(width * height)

        area = float(cv.contourArea(contour))
        if area < cfg.area_min:
            return Rejection("area_below_min", area)
        if area > image_area * cfg.area_max_fraction:
            return Rejection("area_above_max", area)

        x, y, w, h = (int(v) for v in cv.boundingRect(contour))
        if self.touches_border(x, y, w, h, width, height):
            return Rejection("touches_border", area)
        if w < cfg.min_dimension or h < cfg.min_dimension:
            return Rejection("too_small", area)

        points = self.simplify(contour)
        perimeter = sum(e.pixel_length for e in edges_for(points))
        circ = circularity(area, perimeter)
        aspect = w / h
        is_coin = self.is_coin_like(area, circ, aspect, image_area)

        moments = cv.moments(contour)
        centroid = None
        if moments["m00"] != 0:
            centroid = Point(moments["m10"] / moments["m00"], moments["m01"] / moments["m00"])

        logger.debug("候选轮廓: area=%.0f, circ=%.3f, aspect=%.3f, coin=%s",
                     area, circ, aspect, is_coin)
        return ShapeCandidate(
            points=points,
            bounding_box=BoundingBox(x, y, w, h),
            area=area,
            perimeter=perimeter,
            circularity=circ,
            aspect_ratio=aspect,
            is_coin=is_coin,
            centroid=centroid,
        )

    def touches_border(self, x: int, y: int, w: int, h: int, width: int, height: int) -> bool:
        """外接框进入图像边缘 border_margin 范围内"""
        margin = self.config.border_margin
        return (x <= margin or y <= margin
                or x + w >= width - margin
                or y + h >= height - margin)

    def simplify(self, contour: np.ndarray) -> Tuple[Point, ...]:
        """Douglas-Peucker 多边形逼近，保持闭合且不少于3个顶点

        容差为周长的 approx_epsilon 倍；顶点不足时逐次减半容差，
        仍不足则退化为外接矩形的四个角。
        """
        cv = self._cv
        arc = cv.arcLength(contour, True)
        epsilon = self.config.approx_epsilon * arc
        for _ in range(_SIMPLIFY_RETRIES):
            approx = cv.approxPolyDP(contour, epsilon, True).reshape(-1, 2)
            if len(approx) >= 3:
                return tuple(Point(float(px), float(py)) for px, py in approx)
            epsilon /= 2.0

        x, y, w, h = cv.boundingRect(contour)
        return (Point(x, y), Point(x + w, y), Point(x + w, y + h), Point(x, y + h))

    def is_coin_like(self, area: float, circ: float, aspect: float, image_area: float) -> bool:
        """硬币判定：圆度、硬币面积区间、近似正方形外接框"""
        cfg = self.config
        return (circ > cfg.coin_circularity_min
                and cfg.coin_area_min <= area <= image_area * cfg.coin_area_max_fraction
                and cfg.coin_aspect_min <= aspect <= cfg.coin_aspect_max)


class MeasureAnalyzer:
    """检测核心类

    Args:
        config: 检测配置，默认使用 edges 预设
        gate: 视觉运行时就绪门
        ids: 对象 id 分配器（会话内共享）
    """

    def __init__(self, config: Optional[DetectionConfig] = None,
                 gate: Optional[RuntimeGate] = None,
                 ids: Optional[IdAllocator] = None):
        self.config = (config or get_preset()).validate()
        self.gate = gate or RuntimeGate()
        self.ids = ids or DEFAULT_IDS
        self.last_rejections: List[Rejection] = []

    def find_candidates(self, image: RawImage, config: DetectionConfig,
                        exclude: Optional[CoinDetection] = None) -> List[ShapeCandidate]:
        """预处理 -> 轮廓提取 -> 形状分析，返回通过过滤的候选"""
        cv = self.gate.wait()
        preprocessor = Preprocessor(cv, config)
        extractor = ContourExtractor(cv)
        shapes = ShapeAnalyzer(cv, config)

        candidates = []
        rejections = []
        with scoped_buffers() as buf:
            buf["mask"] = preprocessor.build_mask(image, exclude=exclude)
            buf["contours"] = extractor.extract(buf["mask"])
            for contour in buf["contours"]:
                result = shapes.analyze(contour, (image.width, image.height))
                if isinstance(result, Rejection):
                    rejections.append(result)
                else:
                    candidates.append(result)

        self.last_rejections = rejections
        logger.debug("有效候选 %d 个，拒绝 %d 个", len(candidates), len(rejections))
        return candidates

    def _to_object(self, candidate: ShapeCandidate, name: str,
                   is_coin: bool, color: str) -> DetectedObject:
        shape = TracedShape(
            points=candidate.points,
            edges=edges_for(candidate.points),
            circularity=candidate.circularity,
            aspect_ratio=candidate.aspect_ratio,
        )
        return DetectedObject(
            id=self.ids.next_id(),
            name=name,
            is_coin=is_coin,
            shape=shape,
            bounding_box=candidate.bounding_box,
            area=candidate.area,
            perimeter=candidate.perimeter,
            color=color,
        )

    @staticmethod
    def _best_coin(candidates: List[ShapeCandidate]) -> Optional[ShapeCandidate]:
        coins = [c for c in candidates if c.is_coin]
        if not coins:
            return None
        return max(coins, key=lambda c: c.circularity)

    def _inside_coin(self, candidate: ShapeCandidate, coin: ShapeCandidate) -> bool:
        """质心落在硬币圆内（按排除系数放大）的对象视为硬币碎片"""
        if candidate.centroid is None:
            return False
        box = coin.bounding_box
        radius = max(box.width, box.height) / 2.0 * self.config.coin_exclusion_factor
        return candidate.centroid.distance_to(box.center) < radius

    def detect(self, image: RawImage,
               exclude_coin: Optional[CoinDetection] = None) -> List[DetectedObject]:
        """完整检测：硬币 + 通用对象

        Args:
            image: 已解码的 RGBA 图像
            exclude_coin: 可选，已知硬币区域不参与检测

        Returns:
            List[DetectedObject]: 硬币（若有）在前，其余按检测顺序
        """
        candidates = self.find_candidates(image, self.config, exclude=exclude_coin)
        coin = self._best_coin(candidates)

        coin_object = None
        objects = []
        created = 0
        for candidate in candidates:
            if candidate is coin:
                coin_object = self._to_object(candidate, COIN_DETECTED_NAME, True, palette_color(created))
                created += 1
                continue
            if coin is not None and self._inside_coin(candidate, coin):
                continue
            name = f"Object {len(objects) + 1}"
            objects.append(self._to_object(candidate, name, False, palette_color(created)))
            created += 1

        if coin_object is not None:
            objects.insert(0, coin_object)
        logger.info("检测完成: %d 个对象，硬币%s", len(objects),
                    "已找到" if coin_object is not None else "未找到")
        return objects

    def detect_coin_only(self, image: RawImage) -> CoinDetection:
        """独立硬币检测，找不到时返回 found=False 而不是抛出异常"""
        config = self.config.coin_pass()
        candidates = self.find_candidates(image, config)
        coin = self._best_coin(candidates)
        if coin is not None:
            box = coin.bounding_box
            diameter = float(max(box.width, box.height))
            logger.info("检测到硬币: 直径 %.1fpx，圆度 %.3f", diameter, coin.circularity)
            return CoinDetection(
                found=True,
                pixel_diameter=diameter,
                center=box.center,
                bounding_box=box,
                circularity=coin.circularity,
                method="contour",
            )

        if config.coin_hough_fallback:
            detection = self._detect_coin_hough(image, config)
            if detection.found:
                return detection

        logger.warning("未检测到硬币，请改用手动标定")
        return CoinDetection.not_found()

    def _detect_coin_hough(self, image: RawImage, config: DetectionConfig) -> CoinDetection:
        """Hough 圆检测回退，取半径最大的圆"""
        cv = self.gate.wait()
        k = odd_kernel(config.blur_kernel)
        blurred = cv.GaussianBlur(cv.cvtColor(image.pixels, cv.COLOR_RGBA2GRAY), (k, k), 1.5)
        circles = cv.HoughCircles(
            blurred, cv.HOUGH_GRADIENT, config.hough_dp, config.hough_min_dist,
            param1=config.hough_param1, param2=config.hough_param2,
            minRadius=config.hough_min_radius, maxRadius=max(image.width, image.height),
        )
        if circles is None or len(circles) == 0:
            return CoinDetection.not_found()

        cx, cy, r = (float(v) for v in max(circles[0], key=lambda c: c[2]))
        logger.info("Hough 检测到硬币: 直径 %.1fpx", 2 * r)
        return CoinDetection(
            found=True,
            pixel_diameter=2 * r,
            center=Point(cx, cy),
            bounding_box=BoundingBox(cx - r, cy - r, 2 * r, 2 * r),
            method="hough",
        )


def coin_pixel_diameter(obj: DetectedObject) -> float:
    """硬币对象的像素直径（外接框长边）"""
    diameter = getattr(obj.shape, "pixel_diameter", None)
    if diameter is not None:
        return float(diameter)
    return float(max(obj.bounding_box.width, obj.bounding_box.height))


def detect(image: RawImage, config: Optional[DetectionConfig] = None,
           gate: Optional[RuntimeGate] = None) -> List[DetectedObject]:
    """完整检测（便捷函数）"""
    return MeasureAnalyzer(config, gate=gate).detect(image)


def detect_coin_only(image: RawImage, config: Optional[DetectionConfig] = None,
                     gate: Optional[RuntimeGate] = None) -> CoinDetection:
    """独立硬币检测（便捷函数）"""
    return MeasureAnalyzer(config, gate=gate).detect_coin_only(image)
