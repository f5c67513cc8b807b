"""
Unit tests for config_loader module.
"""

from pathlib import Path

import pytest
import yaml

from scanner.config_loader import DEFAULT_CONFIG_PATH, ScannerConfig, load_config

VALID_CONFIG = {
    "editor": {"margin_px": 30, "max_margin_fraction": 0.25, "handle_size_px": 14},
    "homography": {"solver": "direct", "power_iterations": 80},
    "output": {"jpeg_quality": 92},
}


def write_config(tmp_path: Path, raw) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return path


def with_override(section, key, value):
    raw = {name: dict(values) for name, values in VALID_CONFIG.items()}
    raw[section][key] = value
    return raw


class TestLoadConfig:
    def test_default_config(self):
        config = load_config()

        assert isinstance(config, ScannerConfig)
        assert config.editor.margin_px == 30
        assert config.editor.max_margin_fraction == 0.25
        assert config.editor.handle_size_px == 14
        assert config.homography.solver == "direct"
        assert config.homography.power_iterations == 80
        assert config.output.jpeg_quality == 92

    def test_default_path_is_packaged(self):
        assert DEFAULT_CONFIG_PATH.name == "config.yaml"
        assert DEFAULT_CONFIG_PATH.exists()

    def test_custom_file(self, tmp_path):
        path = write_config(tmp_path, with_override("homography", "solver", "power_iteration"))

        assert load_config(path).homography.solver == "power_iteration"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_missing_section(self, tmp_path):
        path = write_config(tmp_path, {"editor": VALID_CONFIG["editor"]})

        with pytest.raises(ValueError, match="Invalid configuration file"):
            load_config(path)

    @pytest.mark.parametrize(
        "section, key, value",
        [
            ("editor", "margin_px", -1),
            ("editor", "max_margin_fraction", 0.5),
            ("editor", "max_margin_fraction", 0),
            ("editor", "handle_size_px", 0),
            ("homography", "solver", "svd"),
            ("homography", "power_iterations", 0),
            ("output", "jpeg_quality", 101),
        ],
    )
    def test_invalid_values(self, tmp_path, section, key, value):
        path = write_config(tmp_path, with_override(section, key, value))

        with pytest.raises(ValueError):
            load_config(path)
