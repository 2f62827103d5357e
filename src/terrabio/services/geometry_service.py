# src/terrabio/services/geometry_service.py
from __future__ import annotations

"""
Limpieza puntual de capas de uso de suelo (se corre una vez por deal):
  • fix_rings: anillo -> polígono
  • undesignated: fincas menos intervención/regeneración/referencia
  • enclosure: rectángulo envolvente de todas las capas (AOI completo)
La topología la resuelve el GeometryPort (Earth Engine o shapely).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..contracts.stats import ExportJob
from ..ports.geometry import GeometryPort, Layer

logger = logging.getLogger(__name__)

# error máximo (m) de ee.Feature.difference
DEFAULT_MAX_ERROR = 1.0


@dataclass
class GeometryService:
    geometry: Optional[GeometryPort] = None
    max_error: float = DEFAULT_MAX_ERROR

    def _port(self) -> GeometryPort:
        if self.geometry is None:
            raise RuntimeError("GeometryPort no configurado")
        return self.geometry

    def load(self, source: str) -> Layer:
        return self._port().load(source)

    def fix_rings(self, layer: Layer) -> Layer:
        return self._port().fix_rings(layer)

    def undesignated(self, farms: Layer, *others: Layer) -> Layer:
        if not others:
            raise ValueError("undesignated requiere al menos una capa a restar")
        logger.info("Fincas no designadas: restando %d capa(s)", len(others))
        return self._port().difference(farms, others, max_error=self.max_error)

    def enclosure(self, *layers: Layer) -> Layer:
        if not layers:
            raise ValueError("enclosure requiere al menos una capa")
        return self._port().enclosure(layers)

    def save(self, layer: Layer, destination: str, description: Optional[str] = None) -> ExportJob:
        desc = description or destination.rstrip("/").split("/")[-1]
        # sin extensión: Earth Engine no acepta '.' en las descripciones
        desc = desc.rsplit(".", 1)[0] if "." in desc else desc
        return self._port().save(layer, destination, desc)


__all__ = ["GeometryService", "DEFAULT_MAX_ERROR"]
