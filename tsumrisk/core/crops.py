"""
Crop definition: ordered phenological stages and maturity/frost thresholds.

This module provides the frozen dataclasses :class:`Stage` and :class:`Crop`
consumed by the phenology engine. A crop is a sequence of stages, each with
its own base temperature and the TSum needed to leave it, plus the TSum
required to reach maturity and the temperature below which a day counts as
a frost day.

Classes
-------
Stage
    One phenological phase (name, TSum threshold, base temperature).
Crop
    Immutable crop definition with YAML round-trip and presets.

Notes
-----
- **Validation**: at least one stage; stage TSums, base temperatures are
  finite and TSums non-negative; ``tsum_maturity`` non-negative.
- **YAML keys** are matched case-insensitively with underscores ignored
  (``tsumMaturity``, ``tsum_maturity`` and ``tsummaturity`` are the same
  key). The misspelled ``frostTreashold`` written by older tools is
  accepted as an alias of ``frostThreshold``.

Examples
--------
>>> from tsumrisk.core.crops import Crop
>>> crop = Crop.soybean()
>>> crop.stages[0].base_temp
8.0
>>> crop.base_temps
array([8., 6., 6.])
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, Tuple

import numpy as np
import yaml

Array = np.ndarray


def _norm(key: str) -> str:
    return str(key).replace("_", "").lower()


@dataclass(frozen=True, slots=True)
class Stage:
    """
    A phenological stage.

    Parameters
    ----------
    name : str
        Human-readable stage name (optional in crop files).
    tsum : float
        TSum accumulated within this stage before moving to the next one.
    base_temp : float
        Base temperature [°C] used for the daily TSum during this stage.
    """

    name: str
    tsum: float
    base_temp: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Stage":
        norm = {_norm(k): v for k, v in raw.items()}
        try:
            return cls(
                name=str(norm.get("name", "")),
                tsum=float(norm["tsum"]),
                base_temp=float(norm["basetemp"]),
            )
        except KeyError as e:
            raise ValueError(f"Stage is missing field {e.args[0]!r}.") from e


@dataclass(frozen=True, slots=True)
class Crop:
    """
    Immutable crop definition.

    Parameters
    ----------
    name : str
        Crop identifier.
    tsum_maturity : float
        Yearly TSum at which the crop is considered mature.
    stages : sequence of Stage
        Stages in development order. Stored as a tuple.
    frost_threshold : float
        Minimum temperature [°C] below which a day is a frost day.

    Raises
    ------
    ValueError
        If there are no stages or a threshold is negative or not finite.
    """

    name: str
    tsum_maturity: float
    stages: Tuple[Stage, ...]
    frost_threshold: float
    _base_temps: Array = field(init=False, repr=False, compare=False)
    _stage_tsums: Array = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "stages", tuple(self.stages))
        if not self.stages:
            raise ValueError("A crop needs at least one stage.")
        for st in self.stages:
            if not (math.isfinite(st.tsum) and math.isfinite(st.base_temp)):
                raise ValueError(f"Stage '{st.name}' has non-finite values.")
            if st.tsum < 0.0:
                raise ValueError(
                    f"Stage '{st.name}' has a negative TSum threshold."
                )
        if not math.isfinite(self.tsum_maturity) or self.tsum_maturity < 0.0:
            raise ValueError("tsum_maturity must be a non-negative number.")
        if not math.isfinite(self.frost_threshold):
            raise ValueError("frost_threshold must be finite.")
        for attr, values in (
            ("_base_temps", [st.base_temp for st in self.stages]),
            ("_stage_tsums", [st.tsum for st in self.stages]),
        ):
            arr = np.array(values, dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, attr, arr)

    # -------------------------
    # Vector views used by the engine
    # -------------------------
    @property
    def n_stages(self) -> int:
        return len(self.stages)

    @property
    def base_temps(self) -> Array:
        """Base temperature per stage, indexable by a stage-index array."""
        return self._base_temps

    @property
    def stage_tsums(self) -> Array:
        """TSum threshold per stage, indexable by a stage-index array."""
        return self._stage_tsums

    # -------------------------
    # Presets and YAML
    # -------------------------
    @classmethod
    def soybean(cls) -> "Crop":
        """Return the ``soybean_0`` preset (MONICA soybeanEU parameters)."""
        return cls.from_preset("soybean_0")

    @classmethod
    def from_preset(cls, name: str) -> "Crop":
        """
        Instantiate from a named preset.

        Parameters
        ----------
        name : {'soybean_0'}
            Preset identifier.

        Raises
        ------
        KeyError
            If `name` is not a known preset.
        """
        presets: Mapping[str, dict] = {
            "soybean_0": dict(
                name="soybean_0",
                tsum_maturity=2235.0,
                stages=(
                    Stage("germination", 167.0, 8.0),
                    Stage("flowering", 1048.0, 6.0),
                    Stage("maturity", 1058.0, 6.0),
                ),
                # temperature below which cold damage occurs
                frost_threshold=5.0,
            ),
        }
        try:
            return cls(**presets[name])
        except KeyError as e:
            raise KeyError(
                f"Unknown preset '{name}'. Known: {sorted(presets)}"
            ) from e

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Crop":
        """Build a crop from a parsed crop document."""
        norm = {_norm(k): v for k, v in raw.items()}
        if "frosttreashold" in norm and "frostthreshold" not in norm:
            norm["frostthreshold"] = norm["frosttreashold"]
        try:
            stages: Sequence[Mapping[str, Any]] = norm["stages"] or ()
            return cls(
                name=str(norm.get("name", "")),
                tsum_maturity=float(norm["tsummaturity"]),
                stages=tuple(Stage.from_mapping(s) for s in stages),
                frost_threshold=float(norm["frostthreshold"]),
            )
        except KeyError as e:
            raise ValueError(f"Crop is missing field {e.args[0]!r}.") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Crop":
        """Read a crop document from a YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"{path}: expected a crop mapping.")
        return cls.from_mapping(raw)

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "tsumMaturity": self.tsum_maturity,
            "stages": [
                {"name": st.name, "tsum": st.tsum, "baseTemp": st.base_temp}
                for st in self.stages
            ],
            "frostThreshold": self.frost_threshold,
        }

    def to_yaml(self, path: str | Path) -> None:
        """Write the crop document to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_mapping(), f, sort_keys=False)
