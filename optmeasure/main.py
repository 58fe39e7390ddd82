"""
OptMeasure 批量测量 - 程序入口
"""
import argparse
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from optmeasure.config import PRESETS, DEFAULT_PRESET, get_preset, load_config
from optmeasure.errors import OptMeasureError
from optmeasure.loader import load_image
from optmeasure.runtime import RuntimeGate
from optmeasure.session import MeasurementSession

# 日志配置
logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(message)s')
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="用参考硬币测量照片中的多边形物体")
    parser.add_argument("images", nargs="+", type=Path, help="图像文件")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=DEFAULT_PRESET)
    parser.add_argument("--config", type=Path, help="JSON 配置文件（覆盖 --preset）")
    parser.add_argument("--coin-diameter-px", type=float,
                        help="手动指定硬币像素直径，跳过自动硬币检测")
    parser.add_argument("--workers", type=int, default=1, help="并行处理的图像数")
    parser.add_argument("--json", type=Path, dest="json_out", help="结果输出为 JSON 文件")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    return parser


def measure_image(path: Path, session: MeasurementSession,
                  coin_diameter_px: Optional[float] = None) -> dict:
    """测量单张图像，返回可序列化的结果"""
    session.load_image(load_image(path))
    if coin_diameter_px:
        session.auto_detect_objects()
        session.calibrate_with_diameter(coin_diameter_px)
    else:
        detection = session.auto_detect_all()
        if not detection.found:
            logger.warning("%s: 未找到硬币，请使用 --coin-diameter-px 手动标定", path.name)

    result = session.to_dict()
    result["image"] = str(path)
    return result


def log_summary(result: dict):
    ppm = result["ppm"]
    logger.info("%s: ppm=%s，对象 %d 个", result["image"],
                f"{ppm:.3f}" if ppm else "未标定", len(result["objects"]))
    for obj in result["objects"]:
        perimeter = obj["measurements"]["perimeter"]
        logger.info("  #%d %-18s 周长 %8.1fpx  %s", obj["id"], obj["name"], obj["perimeter"],
                    f"{perimeter:.2f}mm" if perimeter is not None else "-")


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args.config) if args.config else get_preset(args.preset)
    except OptMeasureError as e:
        logger.error("%s", e)
        return 2

    # 所有图像共享同一个运行时就绪门
    gate = RuntimeGate()

    def run(path: Path) -> Optional[dict]:
        session = MeasurementSession(config, gate=gate)
        try:
            return measure_image(path, session, args.coin_diameter_px)
        except OptMeasureError as e:
            logger.error("%s: %s", path, e)
            return None

    with ThreadPoolExecutor(max_workers=max(1, args.workers)) as pool:
        results = list(pool.map(run, args.images))

    succeeded = [r for r in results if r is not None]
    for result in succeeded:
        log_summary(result)

    if args.json_out:
        with args.json_out.open("w", encoding="utf-8") as f:
            json.dump(succeeded, f, ensure_ascii=False, indent=2)
        logger.info("结果已保存: %s", args.json_out)

    return 0 if len(succeeded) == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
