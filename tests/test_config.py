import json
import logging

import pytest

from treemorph.config import (
    FoliageParams,
    SceneConfig,
    clamp_photo_scale,
    clamp_tree_scale,
    load_config,
)


def test_defaults_match_reference_scene():
    cfg = SceneConfig()
    assert cfg.tree_height == 12.0
    assert cfg.tree_radius == 5.0
    assert cfg.scatter_radius == 15.0
    assert cfg.foliage_count == 20000
    assert [(o.name, o.count, o.shape) for o in cfg.ornaments] == [
        ("heavy", 150, "cube"), ("light", 250, "sphere"), ("extra_light", 300, "sphere"),
    ]


def test_out_of_range_values_are_clamped(caplog):
    with caplog.at_level(logging.WARNING):
        cfg = SceneConfig(tree_scale=-1.0, photo_scale=9.0, foliage_count=-5, scatter_radius=0.0)
    assert cfg.tree_scale == 0.5
    assert cfg.photo_scale == 2.0
    assert cfg.foliage_count == 0
    assert cfg.scatter_radius > 0.0
    assert "clamped" in caplog.text


def test_scale_helpers():
    assert clamp_tree_scale(1.2) == 1.2
    assert clamp_tree_scale(10) == 1.5
    assert clamp_photo_scale(0.1) == 0.5


def test_filter_rates_clamped():
    assert FoliageParams(wind_rate=3.0).wind_rate == 1.0


def test_from_dict_nested_and_unknown(caplog):
    with caplog.at_level(logging.WARNING):
        cfg = SceneConfig.from_dict({
            "tree_height": 10,
            "colors": {"foliage": "#00ff00"},
            "foliage": {"drift_amplitude": 1.0, "bogus": 2},
            "ornaments": [{"name": "heavy", "count": 3, "shape": "cube", "color_key": "heavy"}],
            "not_a_key": True,
        })
    assert cfg.tree_height == 10
    assert cfg.colors["foliage"] == "#00ff00"
    assert cfg.colors["light"] == "#ffd700"
    assert cfg.foliage.drift_amplitude == 1.0
    assert len(cfg.ornaments) == 1 and cfg.ornaments[0].count == 3
    assert "not_a_key" in caplog.text
    assert "foliage.bogus" in caplog.text


def test_to_dict_round_trips_through_json(tmp_path):
    cfg = SceneConfig(foliage_count=10, seed=3)
    path = tmp_path / "scene.json"
    path.write_text(json.dumps(cfg.to_dict()), encoding="utf-8")
    loaded = load_config(str(path))
    assert loaded.foliage_count == 10
    assert loaded.seed == 3
    assert loaded.ornament.spin_rates == (0.5, 0.3, 0.2)


def test_load_config_malformed_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        load_config(str(path))
