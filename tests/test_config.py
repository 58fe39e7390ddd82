from __future__ import annotations

import json

import pytest

from optmeasure.config import PRESETS, DetectionConfig, get_preset, load_config
from optmeasure.errors import ValidationError


def _write(tmp_path, data, name="config.json"):
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.mark.parametrize("name", sorted(PRESETS))
def test_presets_are_valid(name):
    assert get_preset(name).validate() is get_preset(name)


def test_unknown_preset():
    with pytest.raises(ValidationError):
        get_preset("sobel")


def test_load_config_with_overrides(tmp_path):
    config = load_config(_write(tmp_path, {
        "preset": "otsu",
        "area_min": 800,
        "coin_aspect_range": [0.7, 1.3],
    }))

    assert config.binarize == "otsu"
    assert config.area_min == 800
    assert (config.coin_aspect_min, config.coin_aspect_max) == (0.7, 1.3)


def test_load_config_defaults_to_edges(tmp_path):
    assert load_config(_write(tmp_path, {})) == get_preset("edges")


@pytest.mark.parametrize("data", [
    {"area_minimum": 10},
    {"binarize": "sobel"},
    {"adaptive_block": 10},
    {"coin_aspect_range": [1.5, 0.5]},
    {"preset": "unknown"},
])
def test_invalid_config(tmp_path, data):
    with pytest.raises(ValidationError):
        load_config(_write(tmp_path, data))


def test_invalid_files(tmp_path):
    with pytest.raises(ValidationError):
        load_config(_write(tmp_path, {}, name="config.yaml"))
    with pytest.raises(ValidationError):
        load_config(_write(tmp_path, [1, 2]))
    bad = tmp_path / "broken.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(bad)
    with pytest.raises(ValidationError):
        load_config(tmp_path / "missing.json")


def test_coin_pass_uses_coin_thresholds():
    config = DetectionConfig()
    coin_pass = config.coin_pass()

    assert coin_pass.morph_kernel == config.coin_pass_morph_kernel
    assert coin_pass.area_min == config.coin_pass_area_min
    assert coin_pass.coin_circularity_min == config.coin_pass_circularity_min
    assert coin_pass.area_max_fraction == config.coin_area_max_fraction
