"""Side-by-side scenario maps drawn on one shared color scale."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional

import matplotlib.pyplot as plt
import numpy as np

from tsumrisk.core.raster import Grid, GridMeta


def plot_scenario_grids(
    grids: Mapping[str, Grid],
    meta: GridMeta,
    title: str = "",
    cmap: str = "viridis",
    path: Optional[str | Path] = None,
):
    """
    Plot composites next to each other with ``meta.min``/``meta.max`` as
    the color limits, so equal values get equal colors across scenarios.

    Parameters
    ----------
    grids : mapping of {str: Grid}
        Panel label to composite grid.
    meta : GridMeta
        Combined metadata (see :func:`tsumrisk.core.raster.combine_meta`).
    title : str, default=""
        Figure title.
    cmap : str, default="viridis"
        Matplotlib colormap name; NoData cells are drawn light grey.
    path : str or pathlib.Path, optional
        When given, the figure is saved there and closed.

    Returns
    -------
    matplotlib.figure.Figure
    """
    colormap = plt.get_cmap(cmap).copy()
    colormap.set_bad("lightgrey")
    fig, axes = plt.subplots(
        1, len(grids), figsize=(5 * len(grids), 4), squeeze=False
    )
    image = None
    for ax, (label, grid) in zip(axes[0], grids.items()):
        masked = np.ma.masked_equal(grid.data, grid.meta.nodata)
        image = ax.imshow(masked, cmap=colormap, vmin=meta.min, vmax=meta.max)
        ax.set_title(label)
        ax.set_xticks([])
        ax.set_yticks([])
    if image is not None:
        fig.colorbar(image, ax=axes[0].tolist(), shrink=0.8)
    if title:
        fig.suptitle(title)
    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=120)
        plt.close(fig)
    return fig
