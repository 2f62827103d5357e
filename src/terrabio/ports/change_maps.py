# src/terrabio/ports/change_maps.py
from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable, Sequence, Optional
from ..contracts.products import AreaOfInterest, ChangeMap
from ..contracts.sampling import SamplePoint, SampleSet

@runtime_checkable
class ChangeMapSourcePort(Protocol):
    """
    Proveedor de mapas de cambio (assets de Earth Engine, GeoTIFF locales...).
    Reglas: `load()` devuelve un ChangeMap con `source_id` igual al pedido.
    """
    def load(self, source_id: str, band_names: Optional[Sequence[str]] = None) -> ChangeMap: ...

@runtime_checkable
class ChangeMapOpsPort(Protocol):
    """
    Álgebra mínima sobre mapas de cambio. Cada operación devuelve un ChangeMap NUEVO.
    Semántica de máscara estilo Earth Engine: un píxel enmascarado sigue enmascarado
    salvo en `unmask()`.
    """
    def select(self, cm: ChangeMap, band: str) -> ChangeMap: ...
    def unmask(self, cm: ChangeMap, value: float = 0) -> ChangeMap: ...
    def not_equal(self, cm: ChangeMap, value: float) -> ChangeMap: ...
    def rename(self, cm: ChangeMap, name: str) -> ChangeMap: ...
    def weighted_sum(self, a: ChangeMap, b: ChangeMap, weight: float, name: str) -> ChangeMap: ...

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
        """
        `class_points[código]` píxeles al azar por estrato de `class_band` dentro de la región.
        Píxeles enmascarados y los de `exclude` no se eligen. Mismo seed -> mismos puntos.
        Si un estrato no tiene píxeles suficientes devuelve los que haya.
        """
        ...

__all__ = ["ChangeMapSourcePort", "ChangeMapOpsPort"]
