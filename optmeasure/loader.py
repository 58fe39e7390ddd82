"""
图像加载模块 - 把编码后的图像解码为 RGBA 像素缓冲
"""
import io
import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from optmeasure.errors import DecodeError
from optmeasure.models import RawImage

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> RawImage:
    """解码图像字节流

    Args:
        data: PNG/JPEG 等编码后的图像内容

    Returns:
        RawImage: RGBA 像素缓冲（已按 EXIF 方向旋正）

    Raises:
        DecodeError: 数据为空或无法识别
    """
    if not data:
        raise DecodeError("图像数据为空")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            rgba = img.convert("RGBA")
            pixels = np.array(rgba, dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"无法解码图像: {e}") from e

    logger.debug("解码图像: %dx%d", pixels.shape[1], pixels.shape[0])
    return RawImage.from_array(pixels)


def load_image(path: Union[str, Path]) -> RawImage:
    """从文件加载图像"""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(f"无法读取图像: {path}") from e
    return decode_image(data)
