"""
标定模块 - 由参考硬币计算 PPM（像素/毫米）并换算真实长度
"""
import logging
import math
from dataclasses import replace
from typing import List, Optional, Tuple

from optmeasure.errors import ValidationError
from optmeasure.models import (
    BoundingBox, DetectedObject, IdAllocator, Point, SyntheticCoin, non_coin,
)
from optmeasure.utils import (
    COIN_COLOR, COIN_DIAMETER_MM, COIN_REFERENCE_NAME, distance, round_real,
)

logger = logging.getLogger(__name__)


def compute_scale(pixel_distance: float, coin_diameter_mm: float = COIN_DIAMETER_MM) -> float:
    """ppm = 像素距离 / 硬币直径(毫米)"""
    if pixel_distance is None or not pixel_distance > 0:
        raise ValidationError(f"像素距离必须大于0: {pixel_distance}")
    return pixel_distance / coin_diameter_mm


def pixel_distance(p1, p2) -> float:
    """两个用户点击点之间的像素距离"""
    a = Point.of(p1)
    b = Point.of(p2)
    return distance(a.x, a.y, b.x, b.y)


def apply_scale(obj: DetectedObject, ppm: Optional[float]) -> DetectedObject:
    """把像素测量换算为毫米

    ppm 为 None 或不大于0 时原样返回（允许未标定运行）。
    每次都由不变的像素长度重新计算，不会在上一次结果上累积。
    """
    if ppm is None or ppm <= 0:
        return obj

    edges = tuple(replace(e, real_length=round_real(e.pixel_length / ppm)) for e in obj.edges)
    shape = replace(obj.shape, edges=edges) if edges else obj.shape
    return replace(obj, shape=shape, real_perimeter=round_real(obj.perimeter / ppm))


def make_reference_coin(diameter_px: float, ids: IdAllocator,
                        center: Optional[Point] = None,
                        bounding_box: Optional[BoundingBox] = None) -> DetectedObject:
    """由直径构造参考硬币对象（没有边界点）"""
    if not diameter_px > 0:
        raise ValidationError(f"硬币直径必须大于0: {diameter_px}")
    if bounding_box is None:
        if center is None:
            center = Point(diameter_px / 2.0, diameter_px / 2.0)
        radius = diameter_px / 2.0
        bounding_box = BoundingBox(center.x - radius, center.y - radius, diameter_px, diameter_px)
    return DetectedObject(
        id=ids.next_id(),
        name=COIN_REFERENCE_NAME,
        is_coin=True,
        shape=SyntheticCoin(pixel_diameter=float(diameter_px)),
        bounding_box=bounding_box,
        area=math.pi * (diameter_px / 2.0) ** 2,
        perimeter=math.pi * diameter_px,
        color=COIN_COLOR,
    )


def recalibrate(objects: List[DetectedObject], diameter_px: float, ids: IdAllocator,
                center: Optional[Point] = None,
                bounding_box: Optional[BoundingBox] = None) -> Tuple[float, List[DetectedObject]]:
    """完整重标定

    用新的 ppm 重新换算所有非硬币对象，并用新的参考硬币替换旧硬币。
    返回的新列表在全部对象换算完成后才生成，调用方整体替换即可，
    不会出现新旧比例混杂的中间状态。

    Returns:
        (ppm, 新对象列表)，参考硬币在前
    """
    ppm = compute_scale(diameter_px)
    coin = apply_scale(make_reference_coin(diameter_px, ids, center, bounding_box), ppm)
    calibrated = [apply_scale(o, ppm) for o in non_coin(objects)]
    logger.info("标定完成: %.4f px/mm，更新 %d 个对象", ppm, len(calibrated))
    return ppm, [coin] + calibrated
