# src/terrabio/ports/zonal_stats.py
from __future__ import annotations

from typing import Protocol, runtime_checkable
from ..contracts.stats import StatsRequest, CountTable

@runtime_checkable
class ZonalStatsPort(Protocol):
    """
    Servicio de estadística zonal (la reducción la hace la plataforma, no nosotros).
    Reglas:
      - una fila por valor distinto de `request.effective_group_by` dentro de la región;
      - solo cuentan píxeles válidos (no enmascarados) de ambas bandas;
      - `map_name` de cada fila = `request.stats_band`.
    Errores remotos se propagan tal cual.
    """
    def reduce(self, request: StatsRequest) -> CountTable: ...

__all__ = ["ZonalStatsPort"]
