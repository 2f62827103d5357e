# src/terrabio/ports/geometry.py
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable, Sequence
from ..contracts.stats import ExportJob

# ee.FeatureCollection o GeoJSON FeatureCollection (según backend)
Layer = Any

@runtime_checkable
class GeometryPort(Protocol):
    """
    Limpieza puntual de capas de uso de suelo. La topología la resuelve el backend.
    """
    def load(self, source: str) -> Layer: ...
    def fix_rings(self, layer: Layer) -> Layer: ...
    def difference(self, layer: Layer, others: Sequence[Layer], max_error: float = 1.0) -> Layer: ...
    def enclosure(self, layers: Sequence[Layer]) -> Layer: ...
    def save(self, layer: Layer, destination: str, description: str) -> ExportJob: ...

__all__ = ["GeometryPort", "Layer"]
