"""
异常模块 - 检测与标定流程中可抛出的错误类型

“未找到硬币”不属于异常，通过 CoinDetection.found 返回。
"""


class OptMeasureError(Exception):
    """所有测量错误的基类"""


class InitializationError(OptMeasureError, RuntimeError):
    """视觉运行时未能在超时内就绪"""


class DecodeError(OptMeasureError, ValueError):
    """输入图像无法解码"""


class ValidationError(OptMeasureError, ValueError):
    """调用参数不合法（点数不足、非正距离、配置错误等）"""
