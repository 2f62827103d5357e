# src/terrabio/services/stats_service.py
from __future__ import annotations

"""
Constructor de peticiones de estadística zonal.

La validación es local y previa a cualquier llamada remota:
  - la banda (y el group_by, si viene) existen en el ChangeMap  -> KeyError
  - la región no es vacía                                       -> ValueError
  - la escala es positiva                                        -> ValueError
La reducción en sí la hace el ZonalStatsPort; sus errores se propagan sin reintentos.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from ..contracts.core import ReducerKind
from ..contracts.geo import CRSRef
from ..contracts.products import AreaOfInterest, ChangeMap
from ..contracts.stats import CountTable, StatsRequest
from ..ports.zonal_stats import ZonalStatsPort

logger = logging.getLogger(__name__)

DEFAULT_SCALE_M = 30.0


def _region_is_empty(region: Optional[AreaOfInterest]) -> bool:
    if region is None:
        return True
    if region.asset_id:
        return False
    g = region.geometry or {}
    if g.get("type") == "FeatureCollection":
        return not any(f.get("geometry") for f in g.get("features", []))
    if g.get("type") == "Feature":
        return not g.get("geometry")
    return not g.get("coordinates")


def build_request(
    image: ChangeMap,
    stats_band: str,
    region: AreaOfInterest,
    *,
    reducer: ReducerKind = ReducerKind.COUNT,
    scale: float = DEFAULT_SCALE_M,
    group_by: Optional[str] = None,
    crs: Optional[CRSRef] = None,
) -> StatsRequest:
    image.require([stats_band])
    if group_by is not None:
        image.require([group_by])
    if _region_is_empty(region):
        raise ValueError("la región de la estadística zonal no puede ser vacía")
    scale = float(scale)
    if not math.isfinite(scale) or scale <= 0:
        raise ValueError(f"scale debe ser > 0 (recibido {scale})")
    req = StatsRequest(
        image=image,
        stats_band=stats_band,
        region=region,
        reducer=ReducerKind(reducer),
        scale=scale,
        group_by=group_by,
        crs=crs,
    )
    logger.debug("StatsRequest %s/%s reducer=%s scale=%s group_by=%s",
                 image.name, stats_band, req.reducer.value, scale, req.effective_group_by)
    return req


@dataclass
class StatsService:
    zonal: Optional[ZonalStatsPort] = None

    def get_stats(self, request: StatsRequest) -> CountTable:
        if self.zonal is None:
            raise RuntimeError("ZonalStatsPort no configurado")
        return self.zonal.reduce(request)

    def count(self, image: ChangeMap, band: str, region: AreaOfInterest, *, scale: float = DEFAULT_SCALE_M,
              crs: Optional[CRSRef] = None) -> CountTable:
        return self.get_stats(build_request(image, band, region, scale=scale, crs=crs))


__all__ = ["DEFAULT_SCALE_M", "build_request", "StatsService"]
