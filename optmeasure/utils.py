"""
工具模块 - 常量定义和几何工具函数
"""
import math
from contextlib import contextmanager
from typing import Iterable, Sequence, Tuple

# ==================== 常量定义 ====================
# 参考硬币
COIN_DIAMETER_MM = 26.5               # 参考硬币直径(毫米)，加元 Loonie
COIN_REFERENCE_NAME = "Coin (Reference)"
COIN_DETECTED_NAME = "Coin"
COIN_COLOR = "#F59E0B"                # 参考硬币显示颜色
REAL_LENGTH_DECIMALS = 2              # 真实长度保留小数位

# 显示调色板（按创建顺序取模）
OBJECT_PALETTE = (
    "#3B82F6",  # 蓝
    "#EF4444",  # 红
    "#10B981",  # 绿
    "#F59E0B",  # 琥珀
    "#8B5CF6",  # 紫
    "#EC4899",  # 粉
    "#06B6D4",  # 青
    "#F97316",  # 橙
)

# 预处理
PREPROCESS_BLUR_KERNEL = 5            # 高斯模糊核(奇数)
PREPROCESS_BILATERAL_D = 9            # 双边滤波邻域直径
PREPROCESS_BILATERAL_SIGMA = 75       # 双边滤波颜色/空间 sigma
PREPROCESS_CANNY_LOW = 30             # Canny 低阈值
PREPROCESS_CANNY_HIGH = 120           # Canny 高阈值
PREPROCESS_MORPH_KERNEL = 9           # 通用形态学椭圆核(像素)
PREPROCESS_CLEANUP_KERNEL = 5         # 开/闭运算清理核
PREPROCESS_ADAPTIVE_BLOCK = 11        # 自适应阈值块大小
PREPROCESS_ADAPTIVE_C = 2             # 自适应阈值常数C
PREPROCESS_CLAHE_CLIP = 0.0           # CLAHE 对比度限制，0 表示关闭（低对比度照片可设为 3.0）
PREPROCESS_CLAHE_TILE = 8             # CLAHE 网格大小

# 形状过滤
SHAPE_AREA_MIN = 2000                 # 最小轮廓面积(像素²)
SHAPE_AREA_MAX_FRACTION = 0.6         # 最大面积占整图比例
SHAPE_BORDER_MARGIN = 10              # 距图像边缘的最小间距(像素)
SHAPE_MIN_DIMENSION = 30              # 外接框最小宽/高(像素)
SHAPE_APPROX_EPSILON = 0.015          # 多边形逼近容差(占周长比例)

# 硬币分类
COIN_CIRCULARITY_MIN = 0.60           # 硬币最小圆度
COIN_AREA_MIN = 2500                  # 硬币最小面积(像素²)
COIN_AREA_MAX_FRACTION = 0.4          # 硬币最大面积占整图比例
COIN_ASPECT_RANGE = (0.65, 1.35)      # 硬币外接框宽高比范围
COIN_EXCLUSION_FACTOR = 1.2           # 硬币区域排除半径系数

# 独立硬币检测
COIN_PASS_BLUR_KERNEL = 9             # 硬币检测模糊核
COIN_PASS_MORPH_KERNEL = 13           # 硬币检测闭运算核（更强的补洞）
COIN_PASS_AREA_MIN = 3000             # 硬币检测最小面积
COIN_PASS_MIN_DIMENSION = 40          # 硬币检测最小宽/高
COIN_PASS_CIRCULARITY_MIN = 0.55      # 硬币检测最小圆度
COIN_HOUGH_DP = 1.2                   # Hough 累加器分辨率
COIN_HOUGH_MIN_DIST = 50              # Hough 圆心最小间距
COIN_HOUGH_PARAM1 = 100               # Hough Canny 高阈值
COIN_HOUGH_PARAM2 = 30                # Hough 累加器阈值
COIN_HOUGH_MIN_RADIUS = 10            # Hough 最小半径

# 手动多边形
MANUAL_CLOSE_RADIUS_PX = 10           # 点击首点附近即闭合(像素)
MANUAL_MIN_POINTS = 3                 # 多边形最少顶点数

# 运行时
RUNTIME_INIT_TIMEOUT_S = 30.0         # 视觉运行时初始化超时(秒)
RUNTIME_MAX_THREADS = 0               # OpenCV 线程数，0 表示保持默认


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """两点欧氏距离"""
    return math.hypot(x2 - x1, y2 - y1)


def ring_pairs(items: Sequence) -> Iterable[Tuple]:
    """闭合环上的相邻元素对（最后一个回到第一个）"""
    count = len(items)
    for i in range(count):
        yield items[i], items[(i + 1) % count]


def shoelace_area(coords: Sequence[Tuple[float, float]]) -> float:
    """鞋带公式计算闭合多边形面积"""
    total = 0.0
    for (x1, y1), (x2, y2) in ring_pairs(coords):
        total += x1 * y2 - x2 * y1
    return abs(total) / 2.0


def circularity(area: float, perimeter: float) -> float:
    """圆度 4π·面积/周长²，完美圆为 1.0"""
    if perimeter <= 0:
        raise ValueError(f"周长必须大于0: {perimeter}")
    return 4.0 * math.pi * area / (perimeter * perimeter)


def round_real(value: float) -> float:
    """真实长度统一保留两位小数"""
    # 四舍五入（0.5 进位），不使用 round() 的银行家舍入
    scale = 10 ** REAL_LENGTH_DECIMALS
    return math.floor(value * scale + 0.5) / scale


def palette_color(index: int) -> str:
    """按创建顺序从调色板取色"""
    return OBJECT_PALETTE[index % len(OBJECT_PALETTE)]


def odd_kernel(size: int) -> int:
    """确保核大小为正奇数"""
    size = max(1, int(size))
    if size % 2 == 0:
        size += 1
    return size



@contextmanager
def scoped_buffers():
    """收集中间缓冲（掩码、轮廓集等），退出时无论成功或异常都统一释放"""
    buffers = {}
    try:
        yield buffers
    finally:
        buffers.clear()
