"""
轮廓提取模块 - 追踪二值掩码中前景区域的外轮廓
"""
import logging
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


class ContourExtractor:
    """只保留最外层轮廓，孔洞（内轮廓）全部丢弃"""

    def __init__(self, cv):
        self._cv = cv

    def extract(self, mask: np.ndarray) -> List[np.ndarray]:
        """提取外轮廓

        Args:
            mask: uint8 二值掩码

        Returns:
            List[np.ndarray]: 每个轮廓为 (N, 2) int32 的有序边界点
        """
        if mask.dtype != np.uint8:
            mask = mask.astype(np.uint8)
        contours, _ = self._cv.findContours(mask, self._cv.RETR_EXTERNAL, self._cv.CHAIN_APPROX_SIMPLE)
        result = [c.reshape(-1, 2).astype(np.int32) for c in contours if len(c) > 0]
        logger.debug("找到 %d 个原始轮廓", len(result))
        return result
