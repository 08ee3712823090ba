"""
Scenario composite pipeline: read, combine, share the scale, write.

For one :class:`~tsumrisk.core.config.CombineConfig` the historical,
RCP4.5 and RCP8.5 grid lists are each combined into one composite, their
metadata are merged into a single value range, and the composites are
written with ``.meta`` legend files titled ``(a)``, ``(b)`` and ``(c)``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

from tsumrisk.core.config import CombineConfig
from tsumrisk.core.errors import ConfigurationError
from tsumrisk.core.raster import CombineMode, Grid, combine_grids, combine_meta
from tsumrisk.library.io_ascii import read_ascii_grid, write_ascii_grid, write_meta_file
from tsumrisk.library.plotting import plot_scenario_grids

logger = logging.getLogger(__name__)

SCENARIOS = (
    # (config attribute, output name, legend title)
    ("historical", "historical", "(a)"),
    ("rcp45", "45", "(b)"),
    ("rcp85", "85", "(c)"),
)


def read_grids(templates: Sequence[str], crop_path: str) -> List[Grid]:
    """Read the grids of one scenario; templates are ``template % crop_path``."""
    paths = [Path(t % crop_path if "%s" in t else t) for t in templates]
    missing = [str(p) for p in paths if not p.exists()]
    if missing:
        raise FileNotFoundError(f"Missing grid files: {missing}")
    return [read_ascii_grid(p) for p in paths]


def run_combine_config(
    config: CombineConfig,
    crop: str,
    crop_path: str,
    plot: bool = False,
) -> Dict[str, Path]:
    """
    Build and write the three scenario composites of ``config``.

    Parameters
    ----------
    config : CombineConfig
        Named combination.
    crop : str
        Crop name used in the output file names.
    crop_path : str
        Substituted into the input grid path templates.
    plot : bool, default=False
        Also save a PNG with the three composites on the shared scale.

    Returns
    -------
    dict of {str: pathlib.Path}
        Written grid path per scenario output name.

    Raises
    ------
    FileNotFoundError
        If an input grid is missing (checked before any combination).
    ConfigurationError
        If a scenario lists no grids, or an odd number of grids under
        :attr:`CombineMode.PAIRED_THRESHOLD`. Checked before any grid is
        read.
    DimensionMismatchError
        If the grids of a scenario do not share the same geometry.
    """
    if config.output_grid_template.count("%s") != 2:
        raise ConfigurationError(
            f"Config '{config.name}': output template needs two '%s' "
            "(crop, scenario)."
        )
    for attr, _, _ in SCENARIOS:
        n = len(getattr(config, attr))
        if n == 0:
            raise ConfigurationError(
                f"Config '{config.name}': no {attr} grids to combine."
            )
        if config.mode is CombineMode.PAIRED_THRESHOLD and n % 2 != 0:
            raise ConfigurationError(
                f"Config '{config.name}': paired combination needs an even "
                f"number of {attr} grids, got {n}."
            )
    inputs = {
        attr: read_grids(getattr(config, attr), crop_path)
        for attr, _, _ in SCENARIOS
    }
    composites = {
        attr: combine_grids(
            grids, config.mode, config.threshold, config.default_min
        )
        for attr, grids in inputs.items()
    }
    shared = combine_meta(
        composites["historical"].meta,
        composites["rcp45"].meta,
        composites["rcp85"].meta,
    )
    written: Dict[str, Path] = {}
    for attr, out_name, title in SCENARIOS:
        grid_path = Path(config.out_path) / (
            config.output_grid_template % (crop, out_name)
        )
        written[out_name] = write_ascii_grid(
            grid_path.with_name(grid_path.name + ".gz"), composites[attr]
        )
        write_meta_file(grid_path, shared, title)
    logger.info(
        "Config '%s': wrote %d composites (range %.2f..%.2f).",
        config.name,
        len(written),
        shared.min,
        shared.max,
    )
    if plot:
        plot_scenario_grids(
            {out: composites[attr] for attr, out, _ in SCENARIOS},
            shared,
            title=f"{crop} {config.name}",
            path=Path(config.out_path) / f"{config.name}_{crop}.png",
        )
    return written
