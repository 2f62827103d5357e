# tests/unit/test_config.py
import json
import pytest
import yaml
from pathlib import Path
from pydantic import ValidationError
from terrabio.config import DealConfig, Settings, get_settings
from terrabio.contracts.core import UnmappedPolicy, LOSS_DICTIONARY
from terrabio.contracts.geo import CRSRef
from terrabio.composition.di import (
    build_backends, build_pixel_count_service, load_deal_from_yaml, load_settings_from_yaml,
)
from tests.factories import box_geojson, feature_collection


def test_settings_defaults_and_paths(tmp_path: Path):
    s = Settings(project_root=tmp_path)
    assert s.scale_m == 30.0
    assert s.unmapped_policy is UnmappedPolicy.WARN
    assert s.export_dir == tmp_path.resolve() / "work/exports"
    assert s.crs_ref() is None


def test_settings_from_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("TERRABIO_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("TERRABIO_GEE_PROJECT", "terrabio-gee")
    monkeypatch.setenv("TERRABIO_CRS", "EPSG:4326")
    monkeypatch.setenv("TERRABIO_UNMAPPED_POLICY", "error")
    s = get_settings()
    assert s.gee_project == "terrabio-gee"
    assert s.crs_ref() == CRSRef.from_epsg(4326)
    assert s.unmapped_policy is UnmappedPolicy.ERROR
    assert get_settings() is s


@pytest.mark.parametrize("kw", [dict(scale_m=0), dict(unknown_field=1), dict(unmapped_policy="loud")])
def test_settings_validation(kw):
    with pytest.raises(ValidationError):
        Settings(**kw)


def test_settings_from_yaml(tmp_path: Path):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text(yaml.safe_dump({
        "project_root": str(tmp_path),
        "drive_folder": "terrabio",
        "export_dir": "out",
        "crs": "  ",
    }), encoding="utf-8")
    s = load_settings_from_yaml(cfg)
    assert s.drive_folder == "terrabio"
    assert s.export_dir == tmp_path.resolve() / "out"
    assert s.crs is None


def _deal_yaml(tmp_path: Path, **extra) -> Path:
    (tmp_path / "farms.geojson").write_text(json.dumps(feature_collection(box_geojson(0, 0, 1, 1))), encoding="utf-8")
    data = {
        "deal_name": "Horta",
        "report_year": 2023,
        "farms": {"name": "farms", "geojson": "farms.geojson"},
        "gain": "users/terrabio/Horta/outputs/2023/lt_gain_v4",
        "loss": "./maps/lt_loss_v4.tif",
    }
    data.update(extra)
    p = tmp_path / "deal.yaml"
    p.write_text(yaml.safe_dump(data), encoding="utf-8")
    return p


def test_load_deal_from_yaml(tmp_path: Path):
    deal = load_deal_from_yaml(_deal_yaml(tmp_path, dictionary_loss={"1": "Bosque", "2": "Degradado"}))
    assert deal.farms.geometry["type"] == "FeatureCollection"
    assert deal.gain == "users/terrabio/Horta/outputs/2023/lt_gain_v4"
    # rutas locales relativas al YAML
    assert deal.loss == str((tmp_path / "maps/lt_loss_v4.tif").resolve())
    assert deal.dictionary_loss.get(1) == "Bosque"
    assert deal.dictionary_gain.get(1) == "Gain"
    assert deal.workload_tag == "terrabio-h"
    assert deal.loss_then_gain is False


def test_deal_defaults_and_validation():
    farms = {"name": "farms", "asset_id": "users/x/farms"}
    deal = DealConfig(deal_name="Apui", report_year=2024, farms=farms, gain="g", loss="l")
    assert deal.dictionary_loss == LOSS_DICTIONARY
    assert deal.workload_tag == "terrabio-ca"
    with pytest.raises(ValidationError):
        DealConfig(deal_name=" ", report_year=2024, farms=farms, gain="g", loss="l")
    with pytest.raises(ValidationError):
        DealConfig(deal_name="Apui", report_year=2024, farms=farms, gain="g", loss="l", extra=1)
    with pytest.raises(ValidationError):
        deal.deal_name = "x"


def test_build_local_backends_and_service(tmp_path: Path):
    s = Settings(project_root=tmp_path, drive_folder="terrabio", crs="EPSG:32721", unmapped_policy="ignore")
    b = build_backends(s, "local")
    assert b.kind == "local"
    assert b.ops is b.zonal
    svc = build_pixel_count_service(s, b)
    assert svc.scale_m == 30.0
    assert svc.crs == CRSRef.from_epsg(32721)
    assert svc.on_unmapped is UnmappedPolicy.IGNORE
    assert svc.exporter.folder == "terrabio"


def test_unknown_backend(tmp_path: Path):
    with pytest.raises(ValueError):
        build_backends(Settings(project_root=tmp_path), "qgis")
