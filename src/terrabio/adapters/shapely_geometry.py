# src/terrabio/adapters/shapely_geometry.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

from shapely.geometry import Polygon, box, mapping, shape
from shapely.ops import unary_union

from ..contracts.stats import ExportJob, ExportState
from ..ports.geometry import GeometryPort

logger = logging.getLogger(__name__)

GeoJSON = Dict[str, Any]


def as_feature_collection(obj: Mapping[str, Any]) -> GeoJSON:
    """Geometry / Feature / FeatureCollection -> FeatureCollection."""
    t = obj.get("type")
    if t == "FeatureCollection":
        return {"type": "FeatureCollection", "features": list(obj.get("features", []))}
    if t == "Feature":
        return {"type": "FeatureCollection", "features": [dict(obj)]}
    if "coordinates" in obj:
        return {"type": "FeatureCollection", "features": [_feature(obj)]}
    raise ValueError(f"Formato GeoJSON no reconocido (type={t})")


def _feature(geometry: Mapping[str, Any], properties: Mapping[str, Any] | None = None) -> GeoJSON:
    return {"type": "Feature", "geometry": dict(geometry), "properties": dict(properties or {})}


def _geoms(layer: Mapping[str, Any]) -> List[Any]:
    return [shape(f["geometry"]) for f in as_feature_collection(layer)["features"] if f.get("geometry")]


def _ring_polygon(geometry: Mapping[str, Any]) -> Polygon:
    coords = geometry.get("coordinates")
    t = geometry.get("type")
    if not coords:
        raise ValueError("geometría sin coordenadas")
    if t in ("LineString", "LinearRing"):
        return Polygon(coords)
    if t in ("Polygon", "MultiLineString"):
        return Polygon(coords[0], coords[1:])
    if t == "MultiPolygon":
        return Polygon(coords[0][0], coords[0][1:])
    raise ValueError(f"no se puede construir un polígono desde {t}")


@dataclass(frozen=True)
class ShapelyGeometryBackend(GeometryPort):
    """
    Backend local para limpieza de capas GeoJSON (archivos .geojson).
    Operaciones exactas de shapely: `max_error` solo aplica en Earth Engine.
    """

    def load(self, source: str) -> GeoJSON:
        with open(source, "r", encoding="utf-8") as f:
            return as_feature_collection(json.load(f))

    def fix_rings(self, layer: GeoJSON) -> GeoJSON:
        # Solo el primer feature; las propiedades se pierden
        feats = as_feature_collection(layer)["features"]
        if not feats:
            raise ValueError("capa vacía")
        poly = _ring_polygon(feats[0]["geometry"])
        if len(feats) > 1:
            logger.warning("fix_rings: %d features, se usa solo el primero", len(feats))
        return {"type": "FeatureCollection", "features": [_feature(mapping(poly))]}

    def difference(self, layer: GeoJSON, others: Sequence[GeoJSON], max_error: float = 1.0) -> GeoJSON:
        cut = unary_union([g for o in others for g in _geoms(o)])
        out = []
        for f in as_feature_collection(layer)["features"]:
            if not f.get("geometry"):
                continue
            g = shape(f["geometry"]).difference(cut)
            if g.is_empty:
                continue
            out.append(_feature(mapping(g), f.get("properties")))
        logger.debug("difference: %d -> %d features", len(as_feature_collection(layer)["features"]), len(out))
        return {"type": "FeatureCollection", "features": out}

    def enclosure(self, layers: Sequence[GeoJSON]) -> GeoJSON:
        geoms = [g for layer in layers for g in _geoms(layer)]
        if not geoms:
            raise ValueError("enclosure: no hay geometrías")
        bbox = box(*unary_union(geoms).bounds)
        return {"type": "FeatureCollection", "features": [_feature(mapping(bbox))]}

    def save(self, layer: GeoJSON, destination: str, description: str) -> ExportJob:
        os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
        with open(destination, "w", encoding="utf-8") as f:
            json.dump(as_feature_collection(layer), f)
        logger.info("GeoJSON escrito: %s", destination)
        return ExportJob(description=description, selectors=(), destination=destination, state=ExportState.COMPLETED)


__all__ = ["ShapelyGeometryBackend", "as_feature_collection"]
