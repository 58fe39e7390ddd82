"""
配置模块 - 检测流程的全部可调阈值与预设

不同调参版本表达为预设（preset），而不是分叉的代码：
- edges: Canny 边缘 + 形态学（默认）
- adaptive: 自适应阈值 OR Otsu，适合阴影不均匀的照片
- otsu: 全局 Otsu 阈值，适合纯色背景
- hough: 与 edges 相同，硬币检测失败时回退到 Hough 圆检测
"""
import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from optmeasure.errors import ValidationError
from optmeasure.utils import (
    COIN_AREA_MAX_FRACTION, COIN_AREA_MIN, COIN_ASPECT_RANGE, COIN_CIRCULARITY_MIN,
    COIN_EXCLUSION_FACTOR, COIN_HOUGH_DP, COIN_HOUGH_MIN_DIST, COIN_HOUGH_MIN_RADIUS,
    COIN_HOUGH_PARAM1, COIN_HOUGH_PARAM2, COIN_PASS_AREA_MIN, COIN_PASS_BLUR_KERNEL,
    COIN_PASS_CIRCULARITY_MIN, COIN_PASS_MIN_DIMENSION, COIN_PASS_MORPH_KERNEL,
    PREPROCESS_ADAPTIVE_BLOCK, PREPROCESS_ADAPTIVE_C, PREPROCESS_BILATERAL_D,
    PREPROCESS_BILATERAL_SIGMA, PREPROCESS_BLUR_KERNEL, PREPROCESS_CANNY_HIGH,
    PREPROCESS_CANNY_LOW, PREPROCESS_CLAHE_CLIP, PREPROCESS_CLAHE_TILE,
    PREPROCESS_CLEANUP_KERNEL, PREPROCESS_MORPH_KERNEL, SHAPE_APPROX_EPSILON,
    SHAPE_AREA_MAX_FRACTION, SHAPE_AREA_MIN, SHAPE_BORDER_MARGIN, SHAPE_MIN_DIMENSION,
)

BINARIZE_MODES = ("edges", "otsu", "adaptive", "red")
SMOOTHING_MODES = ("bilateral", "gaussian", "none")
INTENSITY_MODES = ("gray", "value")


@dataclass(frozen=True)
class DetectionConfig:
    """检测流程配置

    通用对象与硬币使用独立的阈值；硬币专用检测（detect_coin_only）
    使用 coin_pass_* 参数，闭运算核更大，补洞更强。
    """
    # 预处理
    intensity: str = "gray"
    smoothing: str = "bilateral"
    blur_kernel: int = PREPROCESS_BLUR_KERNEL
    bilateral_d: int = PREPROCESS_BILATERAL_D
    bilateral_sigma: float = PREPROCESS_BILATERAL_SIGMA
    clahe_clip: float = PREPROCESS_CLAHE_CLIP
    clahe_tile: int = PREPROCESS_CLAHE_TILE
    binarize: str = "edges"
    invert: bool = True                     # 暗物体、亮背景
    canny_low: int = PREPROCESS_CANNY_LOW
    canny_high: int = PREPROCESS_CANNY_HIGH
    morph_kernel: int = PREPROCESS_MORPH_KERNEL
    cleanup_kernel: int = PREPROCESS_CLEANUP_KERNEL
    adaptive_block: int = PREPROCESS_ADAPTIVE_BLOCK
    adaptive_c: int = PREPROCESS_ADAPTIVE_C

    # 通用形状过滤
    area_min: float = SHAPE_AREA_MIN
    area_max_fraction: float = SHAPE_AREA_MAX_FRACTION
    border_margin: int = SHAPE_BORDER_MARGIN
    min_dimension: int = SHAPE_MIN_DIMENSION
    approx_epsilon: float = SHAPE_APPROX_EPSILON

    # 硬币分类
    coin_circularity_min: float = COIN_CIRCULARITY_MIN
    coin_area_min: float = COIN_AREA_MIN
    coin_area_max_fraction: float = COIN_AREA_MAX_FRACTION
    coin_aspect_min: float = COIN_ASPECT_RANGE[0]
    coin_aspect_max: float = COIN_ASPECT_RANGE[1]
    coin_exclusion_factor: float = COIN_EXCLUSION_FACTOR

    # 硬币专用检测
    coin_pass_blur_kernel: int = COIN_PASS_BLUR_KERNEL
    coin_pass_morph_kernel: int = COIN_PASS_MORPH_KERNEL
    coin_pass_area_min: float = COIN_PASS_AREA_MIN
    coin_pass_min_dimension: int = COIN_PASS_MIN_DIMENSION
    coin_pass_circularity_min: float = COIN_PASS_CIRCULARITY_MIN
    coin_hough_fallback: bool = False
    hough_dp: float = COIN_HOUGH_DP
    hough_min_dist: float = COIN_HOUGH_MIN_DIST
    hough_param1: float = COIN_HOUGH_PARAM1
    hough_param2: float = COIN_HOUGH_PARAM2
    hough_min_radius: int = COIN_HOUGH_MIN_RADIUS

    def validate(self) -> 'DetectionConfig':
        """检查取值范围，非法时抛出 ValidationError"""
        if self.binarize not in BINARIZE_MODES:
            raise ValidationError(f"未知的二值化方式: {self.binarize}（可选: {'|'.join(BINARIZE_MODES)}）")
        if self.smoothing not in SMOOTHING_MODES:
            raise ValidationError(f"未知的平滑方式: {self.smoothing}（可选: {'|'.join(SMOOTHING_MODES)}）")
        if self.intensity not in INTENSITY_MODES:
            raise ValidationError(f"未知的亮度通道: {self.intensity}（可选: {'|'.join(INTENSITY_MODES)}）")
        for name in ("blur_kernel", "morph_kernel", "cleanup_kernel", "coin_pass_blur_kernel",
                     "coin_pass_morph_kernel", "bilateral_d", "clahe_tile"):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} 必须大于0")
        if self.adaptive_block < 3 or self.adaptive_block % 2 == 0:
            raise ValidationError("adaptive_block 必须是不小于3的奇数")
        if not 0 < self.area_max_fraction <= 1 or not 0 < self.coin_area_max_fraction <= 1:
            raise ValidationError("面积比例必须在 (0, 1] 内")
        if self.area_min < 0 or self.coin_area_min < 0 or self.coin_pass_area_min < 0:
            raise ValidationError("最小面积不能为负")
        if not 0 < self.approx_epsilon < 1:
            raise ValidationError("approx_epsilon 必须在 (0, 1) 内")
        if self.coin_aspect_min > self.coin_aspect_max:
            raise ValidationError("硬币宽高比下限不能大于上限")
        if self.border_margin < 0 or self.min_dimension < 0:
            raise ValidationError("边距和最小尺寸不能为负")
        return self

    def with_overrides(self, **overrides) -> 'DetectionConfig':
        unknown = set(overrides) - {f.name for f in fields(self)}
        if unknown:
            raise ValidationError(f"未知的配置项: {', '.join(sorted(unknown))}")
        return replace(self, **overrides).validate()

    def coin_pass(self) -> 'DetectionConfig':
        """硬币专用检测使用的配置"""
        return replace(
            self,
            blur_kernel=self.coin_pass_blur_kernel,
            morph_kernel=self.coin_pass_morph_kernel,
            area_min=self.coin_pass_area_min,
            area_max_fraction=self.coin_area_max_fraction,
            min_dimension=self.coin_pass_min_dimension,
            coin_circularity_min=self.coin_pass_circularity_min,
            coin_area_min=self.coin_pass_area_min,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


PRESETS: Dict[str, DetectionConfig] = {
    "edges": DetectionConfig(),
    "adaptive": DetectionConfig(
        smoothing="gaussian", blur_kernel=7, binarize="adaptive",
        morph_kernel=5, coin_pass_morph_kernel=7, coin_pass_blur_kernel=9,
    ),
    "otsu": DetectionConfig(
        smoothing="gaussian", blur_kernel=5, binarize="otsu", morph_kernel=3,
        area_min=500, coin_circularity_min=0.7, coin_area_min=1000,
        coin_pass_area_min=1000, coin_pass_circularity_min=0.7,
    ),
    "hough": DetectionConfig(coin_hough_fallback=True),
}

DEFAULT_PRESET = "edges"


def get_preset(name: str = DEFAULT_PRESET) -> DetectionConfig:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValidationError(f"未知的预设: {name}（可选: {'|'.join(PRESETS)}）") from None


def _load_mapping(path: Path) -> Dict[str, Any]:
    if path.suffix.lower() != ".json":
        raise ValidationError(f"不支持的配置文件类型: {path}（仅支持 .json）")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"无法读取配置文件: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("配置文件顶层必须是对象（dict）")
    return data


def config_from_mapping(data: Dict[str, Any]) -> DetectionConfig:
    """{"preset": "...", 其余键为覆盖项} -> DetectionConfig"""
    data = dict(data)
    base = get_preset(str(data.pop("preset", DEFAULT_PRESET)))
    aspect: Tuple[float, float] = data.pop("coin_aspect_range", None)
    if aspect is not None:
        data["coin_aspect_min"], data["coin_aspect_max"] = aspect
    return base.with_overrides(**data)


def load_config(path: Union[str, Path]) -> DetectionConfig:
    """从 JSON 文件加载检测配置"""
    return config_from_mapping(_load_mapping(Path(path)))
