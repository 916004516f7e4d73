"""Tests for TOML config file loading and scanner settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from serpentine.cli import build_parser, resolve_options
from serpentine.config import DEFAULT_CONFIG, ScanConfig, load_config, scan_config_from


class TestLoadConfig:
    def test_missing_config_returns_empty(self, tmp_path: Path) -> None:
        assert load_config(None, tmp_path) == {}

    def test_explicit_path(self, tmp_path: Path) -> None:
        cfg = tmp_path / "custom.toml"
        cfg.write_text("[scanner]\ntab_width = 4\n")
        result = load_config(cfg, tmp_path)
        assert result["scanner"] == {"tab_width": 4}

    def test_auto_discover_serpentine_toml(self, tmp_path: Path) -> None:
        cfg = tmp_path / "serpentine.toml"
        cfg.write_text("[scanner]\nreject_mixed_indentation = true\n")
        result = load_config(None, tmp_path)
        assert result["scanner"] == {"reject_mixed_indentation": True}

    def test_malformed_toml_is_value_error(self, tmp_path: Path) -> None:
        cfg = tmp_path / "serpentine.toml"
        cfg.write_text("[scanner\n")
        with pytest.raises(ValueError):
            load_config(None, tmp_path)


class TestScanConfig:
    def test_defaults(self) -> None:
        assert DEFAULT_CONFIG.tab_width == 8
        assert DEFAULT_CONFIG.reject_mixed_indentation is False

    def test_tab_width_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="tab_width"):
            ScanConfig(tab_width=0)

    def test_no_scanner_table(self) -> None:
        assert scan_config_from({"other": {}}) is DEFAULT_CONFIG

    def test_scanner_table(self) -> None:
        config = scan_config_from({"scanner": {"tab_width": 2, "reject_mixed_indentation": True}})
        assert config == ScanConfig(tab_width=2, reject_mixed_indentation=True)

    @pytest.mark.parametrize("value", ["8", 1.5, True])
    def test_tab_width_type_checked(self, value) -> None:
        with pytest.raises(ValueError, match="scanner.tab_width"):
            scan_config_from({"scanner": {"tab_width": value}})

    def test_reject_mixed_type_checked(self) -> None:
        with pytest.raises(ValueError, match="reject_mixed_indentation"):
            scan_config_from({"scanner": {"reject_mixed_indentation": "yes"}})


class TestConfigMerge:
    def test_config_applied(self, tmp_path: Path) -> None:
        cfg = tmp_path / "serpentine.toml"
        cfg.write_text("[scanner]\ntab_width = 4\n")
        src = tmp_path / "mod.py"
        src.write_text("")
        p = build_parser()
        ns = p.parse_args([str(src)])
        opts = resolve_options(ns)
        assert opts.scan_config.tab_width == 4

    def test_cli_overrides_config(self, tmp_path: Path) -> None:
        cfg = tmp_path / "serpentine.toml"
        cfg.write_text("[scanner]\ntab_width = 4\nreject_mixed_indentation = false\n")
        src = tmp_path / "mod.py"
        src.write_text("")
        p = build_parser()
        ns = p.parse_args([str(src), "--tab-width", "2", "--reject-mixed-indentation"])
        opts = resolve_options(ns)
        assert opts.scan_config == ScanConfig(tab_width=2, reject_mixed_indentation=True)

    def test_unset_flag_keeps_config_value(self, tmp_path: Path) -> None:
        cfg = tmp_path / "serpentine.toml"
        cfg.write_text("[scanner]\nreject_mixed_indentation = true\n")
        src = tmp_path / "mod.py"
        src.write_text("")
        p = build_parser()
        ns = p.parse_args([str(src)])
        opts = resolve_options(ns)
        assert opts.scan_config.reject_mixed_indentation is True

    def test_explicit_config_flag(self, tmp_path: Path) -> None:
        cfg = tmp_path / "alt.toml"
        cfg.write_text("[scanner]\ntab_width = 3\n")
        src = tmp_path / "mod.py"
        src.write_text("")
        p = build_parser()
        ns = p.parse_args([str(src), "--config", str(cfg)])
        opts = resolve_options(ns)
        assert opts.scan_config.tab_width == 3

    def test_invalid_cli_tab_width(self, tmp_path: Path) -> None:
        src = tmp_path / "mod.py"
        src.write_text("")
        p = build_parser()
        ns = p.parse_args([str(src), "--tab-width", "0"])
        with pytest.raises(ValueError):
            resolve_options(ns)
