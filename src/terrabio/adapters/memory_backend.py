## `src/terrabio/adapters/memory_backend.py`
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np
import shapely
from shapely.geometry import shape
from shapely.ops import unary_union

from ..contracts.core import ReducerKind
from ..contracts.geo import GeoRaster, pixel_centers, validate_profile_compat
from ..contracts.products import AreaOfInterest, ChangeMap
from ..contracts.sampling import SamplePoint, SampleSet
from ..contracts.stats import CountRow, CountTable, StatsRequest
from ..ports.change_maps import ChangeMapOpsPort, ChangeMapSourcePort
from ..ports.zonal_stats import ZonalStatsPort

logger = logging.getLogger(__name__)

_BINARY_NODATA = 255
_INT32_NODATA = int(np.iinfo(np.int32).min)


def region_geometry(aoi: AreaOfInterest):
    """GeoJSON (Geometry/Feature/FeatureCollection) -> geometría shapely."""
    if aoi.geometry is None:
        raise ValueError(f"El backend en memoria necesita geometry GeoJSON para '{aoi.name}' (asset_id no basta)")
    g = aoi.geometry
    t = g.get("type")
    if t == "FeatureCollection":
        return unary_union([shape(f["geometry"]) for f in g["features"] if f.get("geometry")])
    if t == "Feature":
        return shape(g["geometry"])
    return shape(g)


def rasterize_region(raster: GeoRaster, aoi: AreaOfInterest) -> np.ndarray:
    """Máscara booleana: píxeles cuyo centro cae dentro de la región."""
    geom = region_geometry(aoi)
    xs, ys = pixel_centers(raster.profile)
    return np.asarray(shapely.contains_xy(geom, xs, ys), dtype=bool)


def _as_number(v: Any):
    f = float(v)
    return int(f) if f.is_integer() else f


@dataclass
class InMemoryBackend(ChangeMapSourcePort, ChangeMapOpsPort, ZonalStatsPort):
    """
    Backend numpy para tests y corridas offline.
    - `handle` de cada ChangeMap: {banda: GeoRaster}.
    - Máscara = nodata del perfil (o NaN), como las máscaras de Earth Engine.
    - La "reducción zonal" es np.unique sobre los píxeles válidos dentro de la región.
    """
    maps: Dict[str, ChangeMap] = field(default_factory=dict)

    # --------- ChangeMapSourcePort ---------
    def register(self, change_map: ChangeMap) -> ChangeMap:
        self.maps[change_map.source_id] = change_map
        return change_map

    def load(self, source_id: str, band_names: Optional[Sequence[str]] = None) -> ChangeMap:
        try:
            cm = self.maps[source_id.rstrip("/")]
        except KeyError:
            raise KeyError(f"ChangeMap no registrado: {source_id}") from None
        if band_names:
            cm.require(band_names)
        return cm

    # --------- ChangeMapOpsPort ---------
    @staticmethod
    def _bands(cm: ChangeMap) -> Mapping[str, GeoRaster]:
        if not isinstance(cm.handle, Mapping):
            raise TypeError(f"{cm.name}: handle no es un mapa banda->GeoRaster")
        return cm.handle

    def _single(self, cm: ChangeMap) -> tuple[str, GeoRaster]:
        if len(cm.band_names) != 1:
            raise ValueError(f"{cm.name}: se esperaba una sola banda, hay {list(cm.band_names)}")
        name = cm.band_names[0]
        return name, self._bands(cm)[name]

    def select(self, cm: ChangeMap, band: str) -> ChangeMap:
        cm.require([band])
        return cm.derive({band: self._bands(cm)[band]}, (band,))

    def unmask(self, cm: ChangeMap, value: float = 0) -> ChangeMap:
        out: Dict[str, GeoRaster] = {}
        for name in cm.band_names:
            r = self._bands(cm)[name]
            data = np.where(r.valid_mask(), r.data, np.asarray(value, dtype=r.data.dtype))
            out[name] = GeoRaster(data, r.profile.with_dtype(r.profile.dtype, None))
        return cm.derive(out, cm.band_names)

    def not_equal(self, cm: ChangeMap, value: float) -> ChangeMap:
        name, r = self._single(cm)
        valid = r.valid_mask()
        data = np.where(valid, (r.data != value).astype(np.uint8), np.uint8(_BINARY_NODATA)).astype(np.uint8)
        return cm.derive({name: GeoRaster(data, r.profile.with_dtype("uint8", _BINARY_NODATA))}, (name,))

    def rename(self, cm: ChangeMap, name: str) -> ChangeMap:
        _, r = self._single(cm)
        return cm.derive({name: r}, (name,))

    def weighted_sum(self, a: ChangeMap, b: ChangeMap, weight: float, name: str) -> ChangeMap:
        _, ra = self._single(a)
        _, rb = self._single(b)
        validate_profile_compat(ra.profile, rb.profile)
        valid = ra.valid_mask() & rb.valid_mask()
        summed = ra.data.astype(np.int64) * int(weight) + rb.data.astype(np.int64)
        data = np.where(valid, summed, _INT32_NODATA).astype(np.int32)
        return a.derive({name: GeoRaster(data, ra.profile.with_dtype("int32", _INT32_NODATA))}, (name,))

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
        bands = self._bands(cm)
        strata = bands[class_band]
        masks = {b: bands[b].valid_mask() for b in cm.band_names}
        xs, ys = pixel_centers(strata.profile)
        available = rasterize_region(strata, region) & masks[class_band]
        if exclude:
            taken = {(p.x, p.y) for p in exclude}
            hit = [(float(x), float(y)) in taken for x, y in zip(xs.ravel(), ys.ravel())]
            available &= ~np.asarray(hit, dtype=bool).reshape(xs.shape)

        rng = np.random.default_rng(seed)
        points = []
        for code, wanted in sorted(class_points.items()):
            if wanted <= 0:
                continue
            rows, cols = np.nonzero(available & (strata.data == code))
            k = min(int(wanted), rows.size)
            if k < wanted:
                logger.warning("estrato %s=%s: %d píxeles disponibles, se pidieron %d", class_band, code, rows.size, wanted)
            if k == 0:
                continue
            for i in np.sort(rng.choice(rows.size, size=k, replace=False)):
                r, c = rows[i], cols[i]
                values = {b: _as_number(bands[b].data[r, c]) for b in cm.band_names if masks[b][r, c]}
                points.append(SamplePoint(x=float(xs[r, c]), y=float(ys[r, c]), values=values))
        logger.debug("stratified_sample %s/%s: %d puntos", cm.name, class_band, len(points))
        return SampleSet(points=tuple(points))

    # --------- ZonalStatsPort ---------
    def reduce(self, request: StatsRequest) -> CountTable:
        bands = self._bands(request.image)
        stat = bands[request.stats_band]
        group = bands[request.effective_group_by]
        validate_profile_compat(stat.profile, group.profile)
        if request.crs is not None and not request.crs.equals(stat.profile.crs):
            logger.debug("crs %s ignorado por el backend en memoria (se usa el grid nativo)", request.crs.code())

        valid = rasterize_region(stat, request.region) & stat.valid_mask() & group.valid_mask()
        values = stat.data[valid].astype(np.float64)
        keys = group.data[valid]

        rows = []
        for k in np.unique(keys):
            sel = values[keys == k]
            if request.reducer is ReducerKind.COUNT:
                v: Any = int(sel.size)
            elif request.reducer is ReducerKind.SUM:
                v = _as_number(sel.sum())
            else:
                v = float(sel.mean())
            rows.append(CountRow(map_name=request.stats_band, map_value=_as_number(k), count=v))
        logger.debug("reduce %s/%s: %d grupos, %d píxeles", request.image.name, request.stats_band, len(rows), int(valid.sum()))
        return CountTable(rows=tuple(rows), reducer=request.reducer)
