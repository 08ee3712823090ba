from __future__ import annotations

import gzip
from pathlib import Path

import pandas as pd
import pytest

from tsumrisk.core.crops import Crop, Stage


def write_weather_csv(path: Path, dates, tavg, tmin, precip) -> Path:
    """Weather file with the two header lines used by the climate data."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["iso-date,tavg,tmin,precip", "YYYY-MM-DD,C,C,mm"]
    for d, a, m, p in zip(dates, tavg, tmin, precip):
        lines.append(f"{pd.Timestamp(d):%Y-%m-%d},{a},{m},{p}")
    text = "\n".join(lines) + "\n"
    if path.suffix == ".gz":
        with gzip.open(path, "wt") as f:
            f.write(text)
    else:
        path.write_text(text)
    return path


@pytest.fixture
def two_stage_crop() -> Crop:
    return Crop(
        name="test",
        tsum_maturity=300.0,
        stages=(Stage("vegetative", 100.0, 5.0), Stage("generative", 200.0, 8.0)),
        frost_threshold=5.0,
    )


@pytest.fixture
def weather_writer():
    return write_weather_csv
