# tests/unit/test_cli.py
import csv
import json
from pathlib import Path

import numpy as np
import pytest
import yaml

from terrabio import cli
from tests.factories import box_geojson, feature_collection


def test_palette_prints_vis_params(capsys):
    assert cli.main(["palette", "loss"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["min"] == 1
    assert len(out["palette"]) == out["max"] - out["min"] + 1

    assert cli.main(["palette"]) == 0
    assert set(json.loads(capsys.readouterr().out)) == {"loss", "gain", "gain_unmasked"}


def test_errors_are_reported_with_exit_code(tmp_path: Path, capsys):
    rc = cli.main(["--root", str(tmp_path), "pixel-counts", "--deal", str(tmp_path / "missing.yaml")])
    assert rc == 1
    assert "[ERROR]" in capsys.readouterr().err


def test_boundaries_requires_an_output(tmp_path: Path, capsys):
    farms = tmp_path / "farms.geojson"
    farms.write_text(json.dumps(feature_collection(box_geojson(0, 0, 2, 2))), encoding="utf-8")
    assert cli.main(["boundaries", "--farms", str(farms)]) == 1
    assert "[ERROR]" in capsys.readouterr().err


def test_boundaries_local(tmp_path: Path):
    farms = tmp_path / "farms.geojson"
    inter = tmp_path / "intervention.geojson"
    farms.write_text(json.dumps(feature_collection(box_geojson(0, 0, 2, 2), box_geojson(5, 5, 6, 6))), encoding="utf-8")
    inter.write_text(json.dumps(feature_collection(box_geojson(0, 0, 2, 2))), encoding="utf-8")
    und, env = tmp_path / "out" / "undesignated.geojson", tmp_path / "out" / "full_aoi.geojson"
    rc = cli.main([
        "boundaries", "--farms", str(farms), "-s", str(inter),
        "--undesignated-out", str(und), "--enclosure-out", str(env),
    ])
    assert rc == 0
    assert len(json.loads(und.read_text(encoding="utf-8"))["features"]) == 1
    assert json.loads(env.read_text(encoding="utf-8"))["type"] == "FeatureCollection"


# ---------- corrida local completa sobre GeoTIFFs ----------

def _write_change_map(path: Path, remapped, yod):
    rasterio = pytest.importorskip("rasterio")
    from rasterio.transform import from_origin

    arr = np.asarray([remapped, yod], dtype="int16")
    with rasterio.open(
        path, "w", driver="GTiff", width=arr.shape[2], height=arr.shape[1], count=2,
        dtype="int16", crs="EPSG:32721", transform=from_origin(0, 0, 30, 30),
    ) as ds:
        ds.write(arr)
        ds.set_band_description(1, "remapped")
        ds.set_band_description(2, "yod")


def _read_csv(path: Path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


@pytest.mark.integration
def test_pixel_counts_local_run(tmp_path: Path, capsys):
    _write_change_map(tmp_path / "lt_loss_v4.tif", [[1, 1, 2, 3]], [[0, 2005, 0, 2010]])
    _write_change_map(tmp_path / "lt_gain_v4.tif", [[0, 1, 1, 0]], [[0, 0, 2012, 0]])
    (tmp_path / "farms.geojson").write_text(
        json.dumps(feature_collection(box_geojson(-1, -31, 121, 1))), encoding="utf-8"
    )
    deal = tmp_path / "horta.yaml"
    deal.write_text(yaml.safe_dump({
        "deal_name": "Horta",
        "report_year": 2023,
        "farms": {"name": "farms", "geojson": "farms.geojson"},
        "gain": "./lt_gain_v4.tif",
        "loss": "./lt_loss_v4.tif",
    }), encoding="utf-8")

    rc = cli.main(["--root", str(tmp_path), "pixel-counts", "--deal", str(deal), "--loss-then-gain", "--wait"])
    assert rc == 0

    out_dir = tmp_path / "work" / "exports"
    names = sorted(p.name for p in out_dir.glob("*.csv"))
    assert names == sorted([
        "Horta_lt_loss_v4_pixelCounts.csv",
        "Horta_lt_gain_v4_pixelCounts.csv",
        "Horta_lt_loss_v4_pixelCountsYod.csv",
        "Horta_lt_loss_v4_pixelCountsDisturbed.csv",
        "Horta_lt_gain_v4_pixelCountsYod.csv",
        "Horta_lt_gain_v4_pixelCountsDisturbed.csv",
        "Horta_lt_loss_v4_pixelCountsLossThenGain.csv",
    ])
    assert capsys.readouterr().out.count("COMPLETED") == 7

    loss = _read_csv(out_dir / "Horta_lt_loss_v4_pixelCounts.csv")
    assert loss[0] == ["map_name", "map_value", "count", "readable"]
    assert loss[1:] == [
        ["remapped", "1", "2", "StableForest"],
        ["remapped", "2", "1", "Degradation"],
        ["remapped", "3", "1", "Deforestation"],
    ]
    disturbed = _read_csv(out_dir / "Horta_lt_loss_v4_pixelCountsDisturbed.csv")
    assert disturbed[1:] == [
        ["disturbedBinary", "0", "2", "NoDisturbance"],
        ["disturbedBinary", "1", "2", "Disturbance"],
    ]
    yod = _read_csv(out_dir / "Horta_lt_gain_v4_pixelCountsYod.csv")
    assert [r[3] for r in yod[1:]] == ["", ""]
    ltg = _read_csv(out_dir / "Horta_lt_loss_v4_pixelCountsLossThenGain.csv")
    assert {r[1]: r[3] for r in ltg[1:]} == {
        "10": "StableForest NoGain",
        "11": "StableForest Gain",
        "21": "Degradation Gain",
        "30": "Deforestation NoGain",
    }


@pytest.mark.integration
def test_strata_sample_local_run(tmp_path: Path, capsys):
    _write_change_map(tmp_path / "lt_loss_v4.tif", [[1, 1, 2, 3]], [[0, 2005, 0, 2010]])
    _write_change_map(tmp_path / "lt_gain_v4.tif", [[0, 1, 1, 0]], [[0, 0, 2012, 0]])
    (tmp_path / "farms.geojson").write_text(
        json.dumps(feature_collection(box_geojson(-1, -31, 121, 1))), encoding="utf-8"
    )
    deal = tmp_path / "horta.yaml"
    deal.write_text(yaml.safe_dump({
        "deal_name": "Horta",
        "report_year": 2023,
        "farms": {"name": "farms", "geojson": "farms.geojson"},
        "gain": "./lt_gain_v4.tif",
        "loss": "./lt_loss_v4.tif",
    }), encoding="utf-8")
    out = tmp_path / "ceo" / "points.csv"

    rc = cli.main(["--root", str(tmp_path), "strata-sample", "--deal", str(deal), "--out", str(out), "--min-points", "1"])
    assert rc == 0
    assert capsys.readouterr().out.startswith("5\t")

    rows = _read_csv(out)
    assert rows[0] == ["strata_map", "x", "y", "sampling_phase", "remapped", "yod"]
    # 1 punto por estrato: pérdida 1/2/3 (no hay NonForest), ganancia 0/1
    by_map = {}
    for r in rows[1:]:
        by_map.setdefault((r[0], r[3]), []).append(r[4])
    assert sorted(by_map[("lt_loss_v4", "additional_loss")]) == ["1", "2", "3"]
    assert sorted(by_map[("lt_gain_v4", "additional_gain")]) == ["0", "1"]
