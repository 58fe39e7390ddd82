"""命令行入口的端到端测试。"""

from __future__ import annotations

import json

import pytest
from PIL import Image

from conftest import paint_scene
from optmeasure.main import build_parser, main


@pytest.fixture
def scene_png(tmp_path):
    path = tmp_path / "scene.png"
    Image.fromarray(paint_scene()).save(path)
    return path


def test_parser_defaults():
    args = build_parser().parse_args(["a.png"])
    assert args.preset == "edges"
    assert args.workers == 1
    assert args.coin_diameter_px is None


def test_measure_with_auto_coin(scene_png, tmp_path):
    out = tmp_path / "result.json"
    assert main([str(scene_png), "--json", str(out)]) == 0

    results = json.loads(out.read_text(encoding="utf-8"))
    assert len(results) == 1
    result = results[0]
    assert result["image"] == str(scene_png)
    assert result["ppm"] is not None
    assert [o["is_coin"] for o in result["objects"]] == [True, False]


def test_measure_with_given_diameter(scene_png, tmp_path):
    out = tmp_path / "result.json"
    assert main([str(scene_png), "--coin-diameter-px", "53", "--json", str(out)]) == 0

    result = json.loads(out.read_text(encoding="utf-8"))[0]
    assert result["ppm"] == pytest.approx(2.0)
    assert result["coin_pixel_diameter"] == 53.0


def test_unreadable_image_fails(scene_png, tmp_path):
    assert main([str(scene_png), str(tmp_path / "missing.png"), "--workers", "2"]) == 1


def test_bad_config_exits_with_2(scene_png, tmp_path):
    config = tmp_path / "bad.json"
    config.write_text(json.dumps({"binarize": "sobel"}), encoding="utf-8")
    assert main([str(scene_png), "--config", str(config)]) == 2
