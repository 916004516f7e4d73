"""Scanner configuration and TOML config-file loading."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "serpentine.toml"


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Indentation measurement policy for one parse.

    Tabs advance to the next multiple of ``tab_width``. With
    ``reject_mixed_indentation`` on, every indentation level is also measured
    with tabs counted as a single column, and the two measures must order the
    levels the same way.
    """

    tab_width: int = 8
    reject_mixed_indentation: bool = False

    def __post_init__(self) -> None:
        if self.tab_width < 1:
            raise ValueError(f"tab_width must be at least 1, got {self.tab_width}")


DEFAULT_CONFIG = ScanConfig()


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / CONFIG_FILENAME

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def scan_config_from(config: dict[str, Any]) -> ScanConfig:
    """Build a ScanConfig from the ``[scanner]`` table of a loaded config."""
    table = config.get("scanner")
    if not isinstance(table, dict):
        return DEFAULT_CONFIG

    tab_width = table.get("tab_width", DEFAULT_CONFIG.tab_width)
    if not isinstance(tab_width, int) or isinstance(tab_width, bool):
        raise ValueError(f"scanner.tab_width must be an integer, got {tab_width!r}")

    reject_mixed = table.get("reject_mixed_indentation", DEFAULT_CONFIG.reject_mixed_indentation)
    if not isinstance(reject_mixed, bool):
        raise ValueError(
            f"scanner.reject_mixed_indentation must be a boolean, got {reject_mixed!r}"
        )

    return ScanConfig(tab_width=tab_width, reject_mixed_indentation=reject_mixed)
