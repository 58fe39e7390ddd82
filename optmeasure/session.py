"""
测量会话模块 - 管理对象集合与标定状态

每次获得新的 ppm（自动检测或手动两点）都走 recalibrate 批量更新，
并一次性替换对象列表。
"""
import logging
from typing import List, Optional, Sequence

from optmeasure.analyzer_core import MeasureAnalyzer, coin_pixel_diameter
from optmeasure.calibration import apply_scale, pixel_distance, recalibrate
from optmeasure.config import DetectionConfig
from optmeasure.errors import ValidationError
from optmeasure.manual import build_manual_polygon
from optmeasure.models import (
    CalibrationState, CoinDetection, DetectedObject, Point, RawImage, non_coin,
)
from optmeasure.runtime import RuntimeGate
from optmeasure.utils import palette_color

logger = logging.getLogger(__name__)


class MeasurementSession:
    """单张图像的测量会话"""

    def __init__(self, config: Optional[DetectionConfig] = None,
                 gate: Optional[RuntimeGate] = None,
                 analyzer: Optional[MeasureAnalyzer] = None):
        self.analyzer = analyzer or MeasureAnalyzer(config, gate=gate)
        self.image: Optional[RawImage] = None
        self.objects: List[DetectedObject] = []
        self.calibration = CalibrationState()
        self.last_coin: Optional[CoinDetection] = None

    @property
    def ppm(self) -> Optional[float]:
        return self.calibration.ppm

    def _require_image(self) -> RawImage:
        if self.image is None:
            raise ValidationError("请先加载图像")
        return self.image

    def load_image(self, image: RawImage):
        """加载新图像，清空之前的对象和标定"""
        self.discard_image()
        self.image = image

    def discard_image(self):
        self.image = None
        self.objects = []
        self.calibration.reset()
        self.last_coin = None

    def object_by_id(self, object_id: int) -> DetectedObject:
        for obj in self.objects:
            if obj.id == object_id:
                return obj
        raise KeyError(f"对象不存在: {object_id}")

    # ===== 标定 =====
    def calibrate_with_diameter(self, diameter_px: float,
                                coin: Optional[CoinDetection] = None) -> float:
        """用硬币像素直径标定并重算所有对象"""
        center = coin.center if coin is not None else None
        box = coin.bounding_box if coin is not None else None
        ppm, objects = recalibrate(self.objects, diameter_px, self.analyzer.ids,
                                   center=center, bounding_box=box)
        self.objects = objects
        self.calibration.ppm = ppm
        self.calibration.coin_pixel_diameter = float(diameter_px)
        return ppm

    def calibrate_from_points(self, p1, p2) -> float:
        """手动两点标定（点击硬币直径两端）"""
        a = Point.of(p1)
        b = Point.of(p2)
        diameter = pixel_distance(a, b)
        if not diameter > 0:
            raise ValidationError("两个标定点不能重合")
        midpoint = Point((a.x + b.x) / 2.0, (a.y + b.y) / 2.0)
        return self.calibrate_with_diameter(diameter, CoinDetection(
            found=True, pixel_diameter=diameter, center=midpoint, method="manual"))

    # ===== 自动检测 =====
    def auto_detect_coin(self) -> CoinDetection:
        """只检测硬币；找到则标定，找不到返回 found=False 供调用方改用手动标定"""
        detection = self.analyzer.detect_coin_only(self._require_image())
        self.last_coin = detection
        if detection.found:
            self.calibrate_with_diameter(detection.pixel_diameter, detection)
        return detection

    @staticmethod
    def _coin_detection(coin: DetectedObject) -> CoinDetection:
        """把检测到的硬币对象转换为标定用的 CoinDetection"""
        box = coin.bounding_box
        return CoinDetection(
            found=True,
            pixel_diameter=coin_pixel_diameter(coin),
            center=box.center,
            bounding_box=box,
            circularity=getattr(coin.shape, "circularity", None),
            method="contour",
        )

    def _keep_coin(self, detected: List[DetectedObject]):
        """保留当前参考硬币与标定，只替换通用对象"""
        coins = [o for o in self.objects if o.is_coin]
        self.objects = coins + [apply_scale(o, self.ppm) for o in non_coin(detected)]

    def auto_detect_objects(self) -> List[DetectedObject]:
        """重新检测通用对象

        已标定时保留当前标定与参考硬币；尚未标定且检测到硬币时，
        用该硬币完成标定。
        """
        image = self._require_image()
        exclude = self.last_coin if self.last_coin is not None and self.last_coin.found else None
        detected = self.analyzer.detect(image, exclude_coin=exclude)
        coins = [o for o in detected if o.is_coin]

        if self.ppm is None and coins:
            detection = self._coin_detection(coins[0])
            self.last_coin = detection
            self.objects = non_coin(detected)
            self.calibrate_with_diameter(detection.pixel_diameter, detection)
        else:
            self._keep_coin(detected)
        return self.objects

    def auto_detect_all(self) -> CoinDetection:
        """检测硬币与对象；检测到硬币时自动完成标定

        找不到硬币时保留原有的参考硬币和标定。
        """
        image = self._require_image()
        detected = self.analyzer.detect(image)
        coins = [o for o in detected if o.is_coin]
        if coins:
            detection = self._coin_detection(coins[0])
        else:
            detection = self.analyzer.detect_coin_only(image)

        if detection.found:
            self.last_coin = detection
            self.objects = non_coin(detected)
            self.calibrate_with_diameter(detection.pixel_diameter, detection)
        else:
            self._keep_coin(detected)
            if self.ppm is None:
                logger.warning("未找到硬币，对象仅有像素测量")
        return detection

    # ===== 对象管理 =====
    def add_manual_polygon(self, points: Sequence) -> DetectedObject:
        """手动创建多边形对象，已标定时立即换算"""
        index = len(non_coin(self.objects)) + 1
        obj = build_manual_polygon(points, self.analyzer.ids, name=f"Object {index}",
                                   color=palette_color(index))
        obj = apply_scale(obj, self.ppm)
        self.objects = self.objects + [obj]
        return obj

    def rename_object(self, object_id: int, name: str) -> DetectedObject:
        if not name or not name.strip():
            raise ValidationError("名称不能为空")
        renamed = self.object_by_id(object_id).renamed(name.strip())
        self.objects = [renamed if o.id == object_id else o for o in self.objects]
        return renamed

    def delete_object(self, object_id: int):
        self.object_by_id(object_id)
        self.objects = [o for o in self.objects if o.id != object_id]

    def to_dict(self):
        return {
            "ppm": self.calibration.ppm,
            "coin_pixel_diameter": self.calibration.coin_pixel_diameter,
            "objects": [o.to_dict() for o in self.objects],
        }
