"""
Run configuration for the TSum engine and the raster combination tool.

Classes
-------
ErrorPolicy
    What to do with a malformed weather record (abort or skip).
EngineConfig
    Year range, default sowing/harvest DOY, worker count and the constants
    of the wet-harvest heuristic. Passed explicitly to the engine.
CombineConfig
    One named combination: scenario grid templates, mode and thresholds.

Functions
---------
load_combine_configs
    Read a YAML mapping of named :class:`CombineConfig` entries.
write_example_combine_configs
    Write an example combination config file.

Notes
-----
YAML keys are matched case-insensitively with underscores ignored, so both
``OutputGridTempl`` and ``output_grid_templ`` are accepted.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import yaml

from tsumrisk.core.errors import ConfigurationError
from tsumrisk.core.raster import CombineMode


class ErrorPolicy(str, enum.Enum):
    """Handling of malformed weather records."""

    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Parameters of one TSum run.

    Parameters
    ----------
    start_year, end_year : int
        Inclusive year range. Records outside the range are ignored.
    sowing_default_doy : int, default=150
        Window start applied where no sowing file overrides it.
    harvest_default_doy : int, default=300
        Window end applied where no harvest file overrides it.
    on_error : ErrorPolicy, default=ErrorPolicy.ABORT
        Malformed weather records abort the run or are skipped.
    max_workers : int, default=1
        Size of the worker pool for weather-file groups. ``1`` runs
        sequentially in the calling thread.
    chunksize : int, default=4096
        Number of weather rows read per chunk.
    rain_window_days : int, default=15
        Capacity of the precipitation ring buffer.
    harvest_offset_days : int, default=10
        Days after the harvest date at which the rain window is evaluated.
    rain_skip_days : int, default=5
        Oldest buffer entries ignored by the wet-harvest rule.
    min_wet_days : int, default=5
        Wet days required in the evaluated window.
    """

    start_year: int
    end_year: int
    sowing_default_doy: int = 150
    harvest_default_doy: int = 300
    on_error: ErrorPolicy = ErrorPolicy.ABORT
    max_workers: int = 1
    chunksize: int = 4096
    rain_window_days: int = 15
    harvest_offset_days: int = 10
    rain_skip_days: int = 5
    min_wet_days: int = 5

    def __post_init__(self):
        if self.start_year > self.end_year:
            raise ConfigurationError(
                f"start_year ({self.start_year}) must not exceed "
                f"end_year ({self.end_year})."
            )
        if self.max_workers < 1 or self.chunksize < 1:
            raise ConfigurationError(
                "max_workers and chunksize must be positive."
            )
        if not (0 <= self.rain_skip_days < self.rain_window_days):
            raise ConfigurationError(
                "rain_skip_days must be in [0, rain_window_days)."
            )
        object.__setattr__(self, "on_error", ErrorPolicy(self.on_error))

    @property
    def n_years(self) -> int:
        return self.end_year - self.start_year + 1

    @property
    def years(self) -> range:
        return range(self.start_year, self.end_year + 1)


# -------------------------
# Combination config
# -------------------------


def _norm_key(key: str) -> str:
    return str(key).replace("_", "").replace("-", "").lower()


_COMBINE_KEYS = {
    "asciigridhistorical": "historical",
    "historical": "historical",
    "asciigrids45": "rcp45",
    "rcp45": "rcp45",
    "asciigrids85": "rcp85",
    "rcp85": "rcp85",
    "outpath": "out_path",
    "outputgridtempl": "output_grid_template",
    "outputgridtemplate": "output_grid_template",
    "combinemode": "mode",
    "mode": "mode",
    "threshold": "threshold",
    "defaultmin": "default_min",
}


@dataclass(frozen=True, slots=True)
class CombineConfig:
    """
    One named raster combination.

    Parameters
    ----------
    name : str
        Config name (the key in the YAML file).
    historical, rcp45, rcp85 : tuple of str
        Grid path templates per scenario. Each template is formatted with
        the crop path via ``template % crop_path``.
    out_path : str
        Output folder.
    output_grid_template : str
        File name template formatted as ``template % (crop, scenario)``.
    mode : CombineMode
        Combination policy.
    threshold : float, default=-1
        Threshold used by the thresholded modes.
    default_min : float, default=0
        Value written by the paired mode when the indicator reaches the
        threshold.
    """

    name: str
    historical: Tuple[str, ...]
    rcp45: Tuple[str, ...]
    rcp85: Tuple[str, ...]
    out_path: str
    output_grid_template: str
    mode: CombineMode = CombineMode.AVERAGE
    threshold: float = -1.0
    default_min: float = 0.0

    @classmethod
    def from_mapping(cls, name: str, raw: Mapping[str, Any]) -> "CombineConfig":
        """Build a config from a YAML mapping with loosely cased keys."""
        kwargs: Dict[str, Any] = {}
        for key, value in raw.items():
            target = _COMBINE_KEYS.get(_norm_key(key))
            if target is None:
                raise ConfigurationError(
                    f"Unknown key '{key}' in combine config '{name}'."
                )
            kwargs[target] = value
        missing = {
            "historical",
            "rcp45",
            "rcp85",
            "out_path",
            "output_grid_template",
        } - set(kwargs)
        if missing:
            raise ConfigurationError(
                f"Combine config '{name}' is missing {sorted(missing)}."
            )
        for scenario in ("historical", "rcp45", "rcp85"):
            paths = kwargs[scenario]
            if isinstance(paths, str):
                paths = [paths]
            kwargs[scenario] = tuple(str(p) for p in paths)
        kwargs["mode"] = CombineMode.parse(kwargs.get("mode", 0))
        kwargs["threshold"] = float(kwargs.get("threshold", -1.0))
        kwargs["default_min"] = float(kwargs.get("default_min", 0.0))
        return cls(name=name, **kwargs)

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "AsciiGrids45": list(self.rcp45),
            "AsciiGrids85": list(self.rcp85),
            "AsciiGridHistorical": list(self.historical),
            "OutPath": self.out_path,
            "OutputGridTempl": self.output_grid_template,
            "CombineMode": int(self.mode),
            "Threshold": self.threshold,
            "DefaultMin": self.default_min,
        }


def load_combine_configs(path: str | Path) -> Dict[str, CombineConfig]:
    """
    Read named combination configs from a YAML file.

    Parameters
    ----------
    path : str or pathlib.Path
        YAML file holding a mapping ``name -> config``.

    Returns
    -------
    dict of {str: CombineConfig}
        Configs in file order.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ConfigurationError
        If the document is not a mapping or an entry is invalid.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: expected a mapping of configs.")
    return {
        str(name): CombineConfig.from_mapping(str(name), entry)
        for name, entry in raw.items()
    }


def write_example_combine_configs(path: str | Path) -> None:
    """Write two example combination configs to ``path``."""
    examples = {
        name: CombineConfig(
            name=name,
            historical=("path/to/ascii/%s/grid_historical",),
            rcp45=("path/to/ascii/%s/grid1", "path/to/ascii/%s/grid2"),
            rcp85=("path/to/ascii/%s/grid1", "path/to/ascii/%s/grid2"),
            out_path="path/to/output",
            output_grid_template=f"{name}_%s_%s.asc",
        ).to_mapping()
        for name in ("config1", "config2")
    }
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(examples, f, sort_keys=False)
