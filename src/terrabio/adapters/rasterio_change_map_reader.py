# src/terrabio/adapters/rasterio_change_map_reader.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Optional, Sequence

import numpy as np
import rasterio
from rasterio.transform import Affine

from ..contracts.geo import CRSRef, DTypeStr, GeoProfile, GeoRaster, GeoTransform
from ..contracts.products import ChangeMap
from ..ports.change_maps import ChangeMapSourcePort

logger = logging.getLogger(__name__)

_DTYPE_MAP = {
    np.dtype("int8"): "int8",
    np.dtype("uint8"): "uint8",
    np.dtype("uint16"): "uint16",
    np.dtype("int16"): "int16",
    np.dtype("uint32"): "uint32",
    np.dtype("int32"): "int32",
    np.dtype("float32"): "float32",
    np.dtype("float64"): "float64",
}


def _np_to_dtype_str(dt: np.dtype) -> DTypeStr:
    try:
        return _DTYPE_MAP[np.dtype(dt)]  # type: ignore[return-value]
    except KeyError as e:
        raise ValueError(f"dtype {dt} no soportado") from e


def _affine_to_gt(a: Affine) -> GeoTransform:
    return (a.c, a.a, a.b, a.f, a.d, a.e)


def _rasterio_crs_to_crsref(crs_obj) -> CRSRef:
    """rasterio CRS -> CRSRef (EPSG si se puede, si no WKT, si no vacío)."""
    if not crs_obj:
        return CRSRef()
    epsg = crs_obj.to_epsg()
    if epsg is not None:
        return CRSRef.from_epsg(int(epsg))
    wkt = crs_obj.to_wkt()
    return CRSRef.from_wkt(wkt) if wkt else CRSRef()


@dataclass(frozen=True)
class RasterioChangeMapReader(ChangeMapSourcePort):
    """Lee un GeoTIFF multibanda (export local de un mapa LandTrendr) como ChangeMap.

    Nombres de banda, en orden de prioridad:
      1. `band_names` pasado a `load()` (uno por banda del archivo);
      2. descripciones de banda del dataset (`ds.descriptions`);
      3. `b1`, `b2`, ...
    `source_id` = ruta del archivo sin extensión, así `ChangeMap.name` es el nombre base.
    """

    def load(self, source_id: str, band_names: Optional[Sequence[str]] = None) -> ChangeMap:
        uri = source_id if os.path.splitext(source_id)[1] else f"{source_id}.tif"
        if not os.path.exists(uri):
            raise FileNotFoundError(uri)
        with rasterio.open(uri) as ds:
            names = self._band_names(ds, band_names)
            crs_ref = _rasterio_crs_to_crsref(ds.crs)
            gt = _affine_to_gt(ds.transform)
            rasters: Dict[str, GeoRaster] = {}
            for idx, name in enumerate(names, start=1):
                arr = ds.read(idx)
                nodata = ds.nodatavals[idx - 1]
                profile = GeoProfile(
                    dtype=_np_to_dtype_str(arr.dtype),
                    width=ds.width,
                    height=ds.height,
                    transform=gt,
                    crs=crs_ref,
                    nodata=float(nodata) if nodata is not None else None,
                )
                rasters[name] = GeoRaster(arr, profile)
        logger.debug("leído %s: bandas=%s", uri, list(names))
        px, py = next(iter(rasters.values())).profile.pixel_size()
        return ChangeMap(
            source_id=os.path.splitext(source_id)[0],
            scale_m=min(abs(px), abs(py)),
            band_names=tuple(names),
            handle=MappingProxyType(rasters),
        )

    @staticmethod
    def _band_names(ds, band_names: Optional[Sequence[str]]) -> tuple[str, ...]:
        if band_names:
            if len(band_names) != ds.count:
                raise ValueError(f"{ds.name}: {ds.count} bandas pero se dieron {len(band_names)} nombres")
            return tuple(band_names)
        desc = tuple(ds.descriptions or ())
        if len(desc) == ds.count and all(desc):
            return desc
        return tuple(f"b{i}" for i in range(1, ds.count + 1))


__all__ = ["RasterioChangeMapReader"]
