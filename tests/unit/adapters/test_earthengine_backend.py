import pytest
from types import SimpleNamespace

pytest.importorskip("ee")

import terrabio.adapters.earthengine_backend as eeb
import terrabio.adapters.earthengine_geometry as eeg
from terrabio.contracts.core import ReducerKind
from terrabio.contracts.geo import CRSRef
from terrabio.contracts.products import AreaOfInterest, ChangeMap
from terrabio.contracts.stats import EXPORT_SELECTORS, CountRow, CountTable, ExportState
from terrabio.services.stats_service import build_request
from tests.factories import box_geojson

pytestmark = pytest.mark.ee


# --------- ee falso: registra la cadena de llamadas, sin red ---------
class FakeImage:
    def __init__(self, ops=()):
        self.ops = tuple(ops)

    def _then(self, *op):
        return FakeImage(self.ops + (op,))

    def select(self, bands):
        return self._then("select", tuple(bands) if isinstance(bands, list) else bands)

    def rename(self, name):
        return self._then("rename", name)

    def addBands(self, other):
        return self._then("addBands", other.ops)

    def unmask(self, v):
        return self._then("unmask", v)

    def neq(self, v):
        return self._then("neq", v)

    def multiply(self, v):
        return self._then("multiply", v)

    def add(self, other):
        return self._then("add", other.ops)

    def stratifiedSample(self, **kw):
        FakeEE.last_sample = dict(kw, image=self)
        return SimpleNamespace(getInfo=lambda: {"features": FakeEE.features})

    def reduceRegion(self, **kw):
        FakeEE.last_reduce = dict(kw, image=self)
        return SimpleNamespace(getInfo=lambda: {"groups": FakeEE.groups})


class FakeReducer:
    def __init__(self, name):
        self.name = name
        self.grouped = None

    def group(self, **kw):
        self.grouped = kw
        return self


class FakeTask:
    def __init__(self, kind, kw):
        self.kind, self.kw, self.started = kind, kw, False

    def start(self):
        self.started = True

    def status(self):
        return {"state": "COMPLETED"}


class FakeEE:
    groups = []
    last_reduce = None
    last_sample = None
    features = []
    tasks = []

    @staticmethod
    def Image(x):
        return x if isinstance(x, FakeImage) else FakeImage((("asset", x),))

    Reducer = SimpleNamespace(count=lambda: FakeReducer("count"), sum=lambda: FakeReducer("sum"),
                              mean=lambda: FakeReducer("mean"))

    @staticmethod
    def Geometry(g):
        return ("geometry", g.get("type"))

    @staticmethod
    def FeatureCollection(x):
        return SimpleNamespace(source=x, geometry=lambda: ("fc-geometry", x))

    @staticmethod
    def Feature(geom, props=None):
        return ("feature", props)

    class batch:
        class Export:
            class table:
                @staticmethod
                def toDrive(**kw):
                    t = FakeTask("drive", kw)
                    FakeEE.tasks.append(t)
                    return t


@pytest.fixture
def fake_ee(monkeypatch):
    FakeEE.groups, FakeEE.last_reduce, FakeEE.tasks = [], None, []
    FakeEE.last_sample, FakeEE.features = None, []
    monkeypatch.setattr(eeb, "ee", FakeEE)
    return FakeEE


def _cm(bands=("remapped", "yod")):
    return ChangeMap(source_id="users/x/Horta/lt_loss_v4", band_names=bands, handle=FakeImage())


def test_reduce_groups_by_band_and_parses_rows(fake_ee):
    fake_ee.groups = [{"group": 3, "count": 5}, {"group": 1, "count": 2}]
    backend = eeb.EarthEngineBackend()
    aoi = AreaOfInterest(geometry=box_geojson(0, 0, 1, 1))
    t = backend.reduce(build_request(_cm(), "remapped", aoi, crs=CRSRef.from_epsg(4326)))
    assert t.as_dict() == {1: 2, 3: 5}
    assert {r.map_name for r in t} == {"remapped"}
    kw = fake_ee.last_reduce
    assert kw["reducer"].name == "count"
    assert kw["reducer"].grouped == {"groupField": 1, "groupName": "group"}
    assert kw["scale"] == 30.0 and kw["crs"] == "EPSG:4326" and kw["maxPixels"] == 1e13
    assert kw["geometry"] == ("geometry", "Polygon")
    assert ("rename", "stat") in kw["image"].ops


def test_reduce_uses_asset_region_and_other_reducers(fake_ee):
    fake_ee.groups = [{"group": 1, "mean": 2004.5}]
    backend = eeb.EarthEngineBackend()
    req = build_request(_cm(), "yod", AreaOfInterest(asset_id="users/x/farms"),
                        reducer=ReducerKind.MEAN, group_by="remapped")
    t = backend.reduce(req)
    assert t.as_dict() == {1: 2004.5}
    assert fake_ee.last_reduce["geometry"] == ("fc-geometry", "users/x/farms")
    assert "crs" not in fake_ee.last_reduce


def test_derivations_chain_lazily(fake_ee):
    backend = eeb.EarthEngineBackend()
    cm = _cm()
    dist = backend.rename(backend.unmask(backend.not_equal(backend.select(cm, "yod"), 0), 0), "disturbedBinary")
    assert dist.band_names == ("disturbedBinary",)
    assert [op[0] for op in dist.handle.ops] == ["select", "neq", "unmask", "rename"]
    assert dist.source_id == cm.source_id


def test_export_table_starts_drive_task(fake_ee):
    backend = eeb.EarthEngineBackend()
    table = CountTable(rows=(CountRow("remapped", 1, 2, "Gain"),))
    job = backend.export_table(table, "Horta_lt_gain_v4_pixelCounts", EXPORT_SELECTORS, folder="terrabio")
    task = fake_ee.tasks[0]
    assert task.started
    assert task.kw["description"] == "Horta_lt_gain_v4_pixelCounts"
    assert task.kw["selectors"] == list(EXPORT_SELECTORS)
    assert task.kw["fileFormat"] == "CSV" and task.kw["folder"] == "terrabio"
    assert job.state is ExportState.SUBMITTED
    assert job.wait(poll_s=0).state is ExportState.COMPLETED


def test_initialize_sets_workload_tag(monkeypatch):
    calls = {}
    fake = SimpleNamespace(
        Initialize=lambda project=None: calls.setdefault("project", project),
        data=SimpleNamespace(setDefaultWorkloadTag=lambda tag: calls.setdefault("tag", tag)),
    )
    monkeypatch.setattr(eeb, "ee", fake)
    eeb.initialize(project="terrabio-gee", workload_tag="terrabio-h")
    assert calls == {"project": "terrabio-gee", "tag": "terrabio-h"}


def test_geometry_save_starts_asset_task(monkeypatch):
    started = {}

    class Task:
        def start(self):
            started["ok"] = True

    fake = SimpleNamespace(
        FeatureCollection=lambda x: x,
        batch=SimpleNamespace(Export=SimpleNamespace(table=SimpleNamespace(
            toAsset=lambda **kw: started.update(kw) or Task()))),
    )
    monkeypatch.setattr(eeg, "ee", fake)
    job = eeg.EarthEngineGeometryBackend().save("layer", "users/x/Horta/full_aoi", "full_aoi")
    assert started["ok"] and started["assetId"] == "users/x/Horta/full_aoi"
    assert job.state is ExportState.SUBMITTED


def test_stratified_sample_passes_class_points(fake_ee):
    fake_ee.features = [
        {"geometry": {"type": "Point", "coordinates": [-60.1, -3.2]},
         "properties": {"remapped": 3, "yod": 2010}},
    ]
    backend = eeb.EarthEngineBackend()
    aoi = AreaOfInterest(geometry=box_geojson(0, 0, 1, 1))
    out = backend.stratified_sample(_cm(), "remapped", aoi, {1: 0, 3: 35, 2: 4}, seed=11)
    kw = fake_ee.last_sample
    assert kw["classBand"] == "remapped"
    assert kw["classValues"] == [2, 3] and kw["classPoints"] == [4, 35]
    assert kw["numPoints"] == 35 and kw["seed"] == 11 and kw["scale"] == 30.0
    assert kw["geometries"] is True
    assert [(p.x, p.y, dict(p.values)) for p in out] == [(-60.1, -3.2, {"remapped": 3, "yod": 2010})]


def test_stratified_sample_nothing_requested(fake_ee):
    out = eeb.EarthEngineBackend().stratified_sample(
        _cm(), "remapped", AreaOfInterest(asset_id="users/x/farms"), {1: 0})
    assert len(out) == 0 and fake_ee.last_sample is None
