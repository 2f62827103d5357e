## `src/terrabio/adapters/earthengine_backend.py`
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

import ee

from ..contracts.products import AreaOfInterest, ChangeMap
from ..contracts.sampling import SamplePoint, SampleSet
from ..contracts.stats import CountRow, CountTable, ExportJob, ExportState, StatsRequest
from ..ports.change_maps import ChangeMapOpsPort, ChangeMapSourcePort
from ..ports.exporters import TableExportPort
from ..ports.zonal_stats import ZonalStatsPort

logger = logging.getLogger(__name__)

_MAX_PIXELS = 1e13


def initialize(project: Optional[str] = None, workload_tag: Optional[str] = None) -> None:
    """ee.Initialize + workload tag por defecto (uno por deal)."""
    ee.Initialize(project=project)
    logger.info("Earth Engine inicializado (project=%s)", project)
    if workload_tag:
        ee.data.setDefaultWorkloadTag(workload_tag)
        logger.info("Workload tag por defecto: %s", workload_tag)


def region_to_ee(aoi: AreaOfInterest) -> ee.Geometry:
    if aoi.asset_id:
        return ee.FeatureCollection(aoi.asset_id).geometry()
    g = dict(aoi.geometry or {})
    if g.get("type") == "FeatureCollection":
        return ee.FeatureCollection(g).geometry()
    if g.get("type") == "Feature":
        return ee.Feature(g).geometry()
    return ee.Geometry(g)


@dataclass(frozen=True)
class EarthEngineBackend(ChangeMapSourcePort, ChangeMapOpsPort, ZonalStatsPort, TableExportPort):
    """
    Backend Earth Engine: todo es perezoso (ee.Image) salvo `reduce()` (getInfo)
    y `export_table()` (lanza un ee.batch.Task y NO espera).
    Requiere `initialize()` previo.
    """
    default_scale_m: float = 30.0

    # --------- ChangeMapSourcePort ---------
    def load(self, source_id: str, band_names: Optional[Sequence[str]] = None) -> ChangeMap:
        img = ee.Image(source_id)
        names = tuple(band_names) if band_names else tuple(img.bandNames().getInfo())
        return ChangeMap(source_id=source_id, scale_m=self.default_scale_m, band_names=names, handle=img)

    # --------- ChangeMapOpsPort ---------
    def select(self, cm: ChangeMap, band: str) -> ChangeMap:
        cm.require([band])
        return cm.derive(ee.Image(cm.handle).select(band), (band,))

    def unmask(self, cm: ChangeMap, value: float = 0) -> ChangeMap:
        return cm.derive(ee.Image(cm.handle).unmask(value), cm.band_names)

    def not_equal(self, cm: ChangeMap, value: float) -> ChangeMap:
        return cm.derive(ee.Image(cm.handle).neq(value), cm.band_names)

    def rename(self, cm: ChangeMap, name: str) -> ChangeMap:
        return cm.derive(ee.Image(cm.handle).rename(name), (name,))

    def weighted_sum(self, a: ChangeMap, b: ChangeMap, weight: float, name: str) -> ChangeMap:
        img = ee.Image(a.handle).multiply(weight).add(ee.Image(b.handle)).rename(name)
        return a.derive(img, (name,))

    def stratified_sample(
        self,
        cm: ChangeMap,
        class_band: str,
        region: AreaOfInterest,
        class_points: Mapping[int, int],
        *,
        scale: Optional[float] = None,
        seed: int = 0,
        exclude: Sequence[SamplePoint] = (),
    ) -> SampleSet:
        cm.require([class_band])
        wanted = {int(c): int(n) for c, n in sorted(class_points.items()) if n > 0}
        if not wanted:
            return SampleSet()
        img = ee.Image(cm.handle)
        if exclude:
            # los píxeles ya elegidos quedan enmascarados
            taken = ee.Geometry.MultiPoint([[p.x, p.y] for p in exclude])
            img = img.updateMask(ee.Image.constant(1).clip(taken).mask().Not())
        fc = img.stratifiedSample(
            numPoints=max(wanted.values()),  # obligatorio, classPoints manda
            classBand=class_band,
            region=region_to_ee(region),
            scale=scale or self.default_scale_m,
            seed=seed,
            classValues=list(wanted),
            classPoints=list(wanted.values()),
            dropNulls=False,
            geometries=True,
        )
        out = fc.getInfo() or {}
        points = []
        for f in out.get("features", []):
            x, y = f["geometry"]["coordinates"][:2]
            props = {k: v for k, v in (f.get("properties") or {}).items() if v is not None}
            points.append(SamplePoint(x=float(x), y=float(y), values=props))
        logger.debug("stratifiedSample %s/%s: %d puntos", cm.name, class_band, len(points))
        return SampleSet(points=tuple(points))

    # --------- ZonalStatsPort ---------
    def reduce(self, request: StatsRequest) -> CountTable:
        img = ee.Image(request.image.handle)
        stacked = (img.select([request.stats_band]).rename("stat")
                   .addBands(img.select([request.effective_group_by]).rename("group")))
        # ee.Reducer.count/sum/mean solo existen tras ee.Initialize()
        reducer = getattr(ee.Reducer, request.reducer.value)().group(groupField=1, groupName="group")
        kwargs: dict[str, Any] = dict(
            reducer=reducer,
            geometry=region_to_ee(request.region),
            scale=request.scale,
            maxPixels=_MAX_PIXELS,
        )
        if request.crs is not None:
            kwargs["crs"] = request.crs.code()
        logger.debug("reduceRegion %s/%s (%s, scale=%s)", request.image.name, request.stats_band,
                     request.reducer.value, request.scale)
        out = stacked.reduceRegion(**kwargs).getInfo() or {}
        rows = [
            CountRow(map_name=request.stats_band, map_value=g["group"], count=g[request.reducer.value])
            for g in out.get("groups", [])
        ]
        return CountTable(rows=tuple(rows), reducer=request.reducer)

    # --------- TableExportPort ---------
    def export_table(self, table: CountTable, description: str, selectors: Sequence[str], folder: Optional[str] = None) -> ExportJob:
        fc = ee.FeatureCollection([ee.Feature(None, rec) for rec in table.records()])
        params: dict[str, Any] = dict(
            collection=fc,
            description=description,
            fileFormat="CSV",
            selectors=list(selectors),
        )
        if folder:
            params["folder"] = folder
        task = ee.batch.Export.table.toDrive(**params)
        task.start()
        return ExportJob(
            description=description,
            selectors=tuple(selectors),
            destination=f"drive:{folder or ''}/{description}.csv",
            state=ExportState.SUBMITTED,
            task=task,
        )
