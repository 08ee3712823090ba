from __future__ import annotations

import numpy.testing as npt
import pytest
import yaml

from tsumrisk.core.crops import Crop, Stage


def test_soybean_preset():
    crop = Crop.soybean()
    assert crop.name == "soybean_0"
    assert crop.tsum_maturity == 2235.0
    assert [s.name for s in crop.stages] == ["germination", "flowering", "maturity"]
    npt.assert_array_equal(crop.base_temps, [8.0, 6.0, 6.0])
    npt.assert_array_equal(crop.stage_tsums, [167.0, 1048.0, 1058.0])
    assert crop.frost_threshold == 5.0


def test_unknown_preset():
    with pytest.raises(KeyError, match="Unknown preset"):
        Crop.from_preset("chickpea")


def test_yaml_round_trip(tmp_path):
    path = tmp_path / "crops" / "soybean.yml"
    Crop.soybean().to_yaml(path)
    assert Crop.from_yaml(path) == Crop.soybean()


def test_reads_lowercase_keys_and_misspelled_frost(tmp_path):
    # key style written by the older tool
    doc = {
        "name": "soybean_0",
        "tsummaturity": 2235,
        "stages": [
            {"name": "germination", "tsum": 167, "basetemp": 8},
            {"name": "flowering", "tsum": 1048, "basetemp": 6},
        ],
        "frosttreashold": 5,
    }
    path = tmp_path / "old.yml"
    path.write_text(yaml.safe_dump(doc))
    crop = Crop.from_yaml(path)
    assert crop.frost_threshold == 5.0
    assert crop.stages[1] == Stage("flowering", 1048.0, 6.0)


def test_validation():
    with pytest.raises(ValueError, match="at least one stage"):
        Crop("x", 100.0, (), 0.0)
    with pytest.raises(ValueError, match="negative"):
        Crop("x", 100.0, (Stage("a", -1.0, 5.0),), 0.0)
    with pytest.raises(ValueError, match="tsum_maturity"):
        Crop("x", -5.0, (Stage("a", 1.0, 5.0),), 0.0)
    with pytest.raises(ValueError, match="missing field"):
        Crop.from_mapping({"name": "x", "stages": []})


def test_stage_arrays_are_built_once():
    crop = Crop.soybean()
    assert crop.base_temps is crop.base_temps
    assert crop.stage_tsums is crop.stage_tsums
    assert not crop.base_temps.flags.writeable
    with pytest.raises(ValueError):
        crop.stage_tsums[0] = 0.0
