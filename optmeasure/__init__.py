"""
OptMeasure - 基于参考硬币的照片尺寸测量

对外入口：detect / detect_coin_only / compute_scale / apply_scale / build_manual_polygon
"""
from optmeasure.analyzer_core import MeasureAnalyzer, detect, detect_coin_only
from optmeasure.calibration import apply_scale, compute_scale, pixel_distance, recalibrate
from optmeasure.config import DetectionConfig, get_preset, load_config
from optmeasure.errors import DecodeError, InitializationError, OptMeasureError, ValidationError
from optmeasure.loader import decode_image, load_image
from optmeasure.manual import PolygonCollector, build_manual_polygon
from optmeasure.models import CalibrationState, CoinDetection, DetectedObject, Point, RawImage
from optmeasure.runtime import RuntimeGate
from optmeasure.session import MeasurementSession

__all__ = [
    "CalibrationState",
    "CoinDetection",
    "DecodeError",
    "DetectedObject",
    "DetectionConfig",
    "InitializationError",
    "MeasureAnalyzer",
    "MeasurementSession",
    "OptMeasureError",
    "Point",
    "PolygonCollector",
    "RawImage",
    "RuntimeGate",
    "ValidationError",
    "apply_scale",
    "build_manual_polygon",
    "compute_scale",
    "decode_image",
    "detect",
    "detect_coin_only",
    "get_preset",
    "load_config",
    "load_image",
    "pixel_distance",
    "recalibrate",
]
