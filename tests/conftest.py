"""pytest 运行期配置与合成场景夹具。

为了在仓库根目录直接执行 `python -m pytest` 时也能导入 `optmeasure`，
这里在测试收集阶段把仓库根目录注入到 sys.path。
"""

from __future__ import annotations

import sys
from pathlib import Path


def _ensure_root_on_syspath() -> None:
    """将仓库根目录加入 sys.path（若尚未存在）。"""

    repo_root = str(Path(__file__).resolve().parents[1])
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_ensure_root_on_syspath()

import cv2  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from optmeasure.models import RawImage  # noqa: E402
from optmeasure.runtime import ReadyGate  # noqa: E402

DARK = (40, 40, 40)

# 场景几何：500x500 白底，暗色圆（硬币）+ 暗色矩形
COIN_CENTER = (150, 150)
COIN_RADIUS = 60
RECT_TOP_LEFT = (280, 300)
RECT_BOTTOM_RIGHT = (440, 380)


def blank_canvas(size: int = 500) -> np.ndarray:
    return np.full((size, size, 3), 255, dtype=np.uint8)


def paint_scene(with_coin: bool = True, with_rect: bool = True) -> np.ndarray:
    canvas = blank_canvas()
    if with_coin:
        cv2.circle(canvas, COIN_CENTER, COIN_RADIUS, DARK, -1)
    if with_rect:
        cv2.rectangle(canvas, RECT_TOP_LEFT, RECT_BOTTOM_RIGHT, DARK, -1)
    return canvas


@pytest.fixture
def gate():
    return ReadyGate(cv2)


@pytest.fixture
def scene() -> RawImage:
    return RawImage.from_array(paint_scene())


@pytest.fixture
def scene_without_coin() -> RawImage:
    return RawImage.from_array(paint_scene(with_coin=False))


@pytest.fixture
def blank_scene() -> RawImage:
    return RawImage.from_array(blank_canvas())
