## `src/terrabio/adapters/earthengine_geometry.py`
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import ee

from ..contracts.stats import ExportJob, ExportState
from ..ports.geometry import GeometryPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EarthEngineGeometryBackend(GeometryPort):
    """Capas = ee.FeatureCollection. `save()` lanza Export.table.toAsset y no espera."""

    def load(self, source: str) -> ee.FeatureCollection:
        return ee.FeatureCollection(source)

    def fix_rings(self, layer: ee.FeatureCollection) -> ee.FeatureCollection:
        # anillo (LinearRing) -> Polygon, desde el primer feature
        coords = ee.FeatureCollection(layer).first().geometry().coordinates()
        return ee.FeatureCollection([ee.Feature(ee.Geometry.Polygon(coords))])

    def difference(self, layer: ee.FeatureCollection, others: Sequence[ee.FeatureCollection], max_error: float = 1.0) -> ee.FeatureCollection:
        out = ee.FeatureCollection(layer)
        for other in others:
            cut = ee.FeatureCollection(other).geometry()
            out = out.map(lambda f, cut=cut: f.difference(right=cut, maxError=max_error))
        return out

    def enclosure(self, layers: Sequence[ee.FeatureCollection]) -> ee.FeatureCollection:
        if not layers:
            raise ValueError("enclosure: no hay capas")
        merged = ee.FeatureCollection(layers[0])
        for layer in layers[1:]:
            merged = merged.merge(ee.FeatureCollection(layer))
        return ee.FeatureCollection([ee.Feature(merged.geometry().bounds())])

    def save(self, layer: ee.FeatureCollection, destination: str, description: str) -> ExportJob:
        task = ee.batch.Export.table.toAsset(
            collection=ee.FeatureCollection(layer),
            description=description,
            assetId=destination,
        )
        task.start()
        logger.info("Export a asset lanzado: %s -> %s", description, destination)
        return ExportJob(
            description=description,
            selectors=(),
            destination=destination,
            state=ExportState.SUBMITTED,
            task=task,
        )


__all__ = ["EarthEngineGeometryBackend"]
