"""
预处理模块 - 灰度化、降噪与二值化，生成供轮廓追踪的掩码
"""
import logging
from typing import Optional

import numpy as np

from optmeasure.config import DetectionConfig
from optmeasure.models import CoinDetection, RawImage
from optmeasure.utils import odd_kernel

logger = logging.getLogger(__name__)

# HSV 红色色相区间（OpenCV 色相范围 0-179）
RED_HSV_BANDS = (
    ((0, 100, 40), (10, 255, 255)),
    ((160, 100, 40), (179, 255, 255)),
)


class Preprocessor:
    """把 RGBA 图像转换为 0/255 二值掩码

    Args:
        cv: 已就绪的 OpenCV 运行时（由 RuntimeGate 提供）
        config: 检测配置
    """

    def __init__(self, cv, config: DetectionConfig):
        self._cv = cv
        self.config = config

    def _ellipse(self, size: int) -> np.ndarray:
        size = odd_kernel(size)
        return self._cv.getStructuringElement(self._cv.MORPH_ELLIPSE, (size, size))

    def intensity(self, rgba: np.ndarray) -> np.ndarray:
        """单通道亮度：灰度或 HSV 的 V 通道（对阴影更鲁棒）"""
        cv = self._cv
        if self.config.intensity == "value":
            rgb = cv.cvtColor(rgba, cv.COLOR_RGBA2RGB)
            return cv.cvtColor(rgb, cv.COLOR_RGB2HSV)[:, :, 2].copy()
        return cv.cvtColor(rgba, cv.COLOR_RGBA2GRAY)

    def enhance(self, gray: np.ndarray) -> np.ndarray:
        """CLAHE 对比度增强，clahe_clip 为 0 时跳过"""
        if self.config.clahe_clip <= 0:
            return gray
        tile = self.config.clahe_tile
        clahe = self._cv.createCLAHE(clipLimit=self.config.clahe_clip, tileGridSize=(tile, tile))
        return clahe.apply(gray)

    def smooth(self, gray: np.ndarray) -> np.ndarray:
        """平滑降噪，双边滤波在抑制纹理的同时保留边缘"""
        cv = self._cv
        cfg = self.config
        if cfg.smoothing == "bilateral":
            return cv.bilateralFilter(gray, cfg.bilateral_d, cfg.bilateral_sigma, cfg.bilateral_sigma)
        if cfg.smoothing == "gaussian":
            k = odd_kernel(cfg.blur_kernel)
            return cv.GaussianBlur(gray, (k, k), 0)
        return gray

    def _otsu(self, smoothed: np.ndarray) -> np.ndarray:
        cv = self._cv
        mode = cv.THRESH_BINARY_INV if self.config.invert else cv.THRESH_BINARY
        _, binary = cv.threshold(smoothed, 0, 255, mode + cv.THRESH_OTSU)
        return binary

    def _edges_mask(self, smoothed: np.ndarray) -> np.ndarray:
        """Canny 边缘 -> 膨胀 + 闭运算连成闭环 -> 填充 -> 腐蚀回原始边界"""
        cv = self._cv
        cfg = self.config
        kernel = self._ellipse(cfg.morph_kernel)
        edges = cv.Canny(smoothed, cfg.canny_low, cfg.canny_high)
        closed = cv.morphologyEx(cv.dilate(edges, kernel), cv.MORPH_CLOSE, kernel)
        contours, _ = cv.findContours(closed, cv.RETR_EXTERNAL, cv.CHAIN_APPROX_SIMPLE)
        filled = np.zeros_like(smoothed)
        if contours:
            cv.drawContours(filled, contours, -1, 255, thickness=cv.FILLED)
        return cv.erode(filled, kernel)

    def _adaptive_mask(self, smoothed: np.ndarray) -> np.ndarray:
        """自适应阈值 OR Otsu，再做闭/开运算"""
        cv = self._cv
        cfg = self.config
        mode = cv.THRESH_BINARY_INV if cfg.invert else cv.THRESH_BINARY
        adaptive = cv.adaptiveThreshold(
            smoothed, 255, cv.ADAPTIVE_THRESH_GAUSSIAN_C, mode,
            cfg.adaptive_block, cfg.adaptive_c
        )
        combined = cv.bitwise_or(adaptive, self._otsu(smoothed))
        kernel = self._ellipse(cfg.morph_kernel)
        combined = cv.morphologyEx(combined, cv.MORPH_CLOSE, kernel)
        return cv.morphologyEx(combined, cv.MORPH_OPEN, kernel)

    def _otsu_mask(self, smoothed: np.ndarray) -> np.ndarray:
        cv = self._cv
        kernel = self._ellipse(self.config.morph_kernel)
        binary = cv.morphologyEx(self._otsu(smoothed), cv.MORPH_CLOSE, kernel)
        return cv.morphologyEx(binary, cv.MORPH_OPEN, kernel)

    def _red_mask(self, rgba: np.ndarray) -> np.ndarray:
        """HSV 红色区域（红色零件专用）"""
        cv = self._cv
        hsv = cv.cvtColor(cv.cvtColor(rgba, cv.COLOR_RGBA2RGB), cv.COLOR_RGB2HSV)
        mask = np.zeros(rgba.shape[:2], dtype=np.uint8)
        for low, high in RED_HSV_BANDS:
            band = cv.inRange(hsv, np.array(low, dtype=np.uint8), np.array(high, dtype=np.uint8))
            mask = cv.bitwise_or(mask, band)
        kernel = self._ellipse(self.config.cleanup_kernel)
        mask = cv.morphologyEx(mask, cv.MORPH_OPEN, kernel)
        return cv.morphologyEx(mask, cv.MORPH_CLOSE, kernel)

    def exclude_coin(self, mask: np.ndarray, coin: CoinDetection) -> np.ndarray:
        """把已知硬币所在圆形区域清零"""
        if not coin.found or coin.center is None or not coin.pixel_diameter:
            return mask
        radius = int(round(coin.pixel_diameter / 2.0 * self.config.coin_exclusion_factor))
        center = (int(round(coin.center.x)), int(round(coin.center.y)))
        cleared = mask.copy()
        self._cv.circle(cleared, center, radius, 0, thickness=-1)
        return cleared

    def build_mask(self, image: RawImage, exclude: Optional[CoinDetection] = None) -> np.ndarray:
        """图像预处理

        Args:
            image: 已解码的 RGBA 图像
            exclude: 可选，已知硬币位置，该区域不参与检测

        Returns:
            np.ndarray: 与输入同尺寸的 uint8 掩码，255 为前景
        """
        mode = self.config.binarize
        if mode == "red":
            mask = self._red_mask(image.pixels)
        else:
            smoothed = self.smooth(self.enhance(self.intensity(image.pixels)))
            if mode == "edges":
                mask = self._edges_mask(smoothed)
            elif mode == "adaptive":
                mask = self._adaptive_mask(smoothed)
            else:
                mask = self._otsu_mask(smoothed)

        if exclude is not None:
            mask = self.exclude_coin(mask, exclude)
        logger.debug("预处理完成(%s): 前景比例 %.3f", mode, float((mask > 0).mean()))
        return mask
