# src/terrabio/services/export_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from ..contracts.stats import EXPORT_SELECTORS, CountTable, ExportJob, MetricSuffix
from ..ports.exporters import TableExportPort

logger = logging.getLogger(__name__)


def export_name(deal_name: str, source_id: str, suffix: Union[MetricSuffix, str]) -> str:
    """`{deal}_{último segmento del asset}_{sufijo}`. Determinista: sin timestamp."""
    deal = deal_name.strip()
    if not deal:
        raise ValueError("deal_name no puede ser vacío")
    last = source_id.strip().rstrip("/").split("/")[-1]
    if not last:
        raise ValueError(f"source_id sin nombre: {source_id!r}")
    sfx = suffix.value if isinstance(suffix, MetricSuffix) else str(suffix).strip()
    if not sfx:
        raise ValueError("sufijo vacío")
    return f"{deal}_{last}_{sfx}"


@dataclass
class ExportService:
    """
    Despacha exportaciones de tablas. No espera: devuelve el ExportJob para que
    el llamador decida si hace `wait()`. Mismo nombre = mismo destino (sin política de colisión).
    """
    exporter: Optional[TableExportPort] = None
    folder: Optional[str] = None
    selectors: Sequence[str] = EXPORT_SELECTORS

    def dispatch(self, table: CountTable, description: str, *, folder: Optional[str] = None) -> ExportJob:
        if self.exporter is None:
            raise RuntimeError("TableExportPort no configurado")
        job = self.exporter.export_table(table, description, tuple(self.selectors), folder or self.folder)
        logger.info("Export despachado: %s (%d filas) -> %s", description, len(table), job.destination)
        return job


__all__ = ["export_name", "ExportService"]
