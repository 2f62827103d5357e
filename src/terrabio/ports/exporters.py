# src/terrabio/ports/exporters.py
from __future__ import annotations

from typing import Protocol, runtime_checkable, Mapping, Optional, Sequence, Tuple
from ..contracts.geo import GeoRaster
from ..contracts.stats import CountTable, ExportJob

URI = str

@runtime_checkable
class TableExportPort(Protocol):
    """
    Exportación asíncrona de tablas (Drive/CSV). Devuelve un ExportJob sin esperar.
    `selectors` fija exactamente las columnas y su orden.
    """
    def export_table(self, table: CountTable, description: str, selectors: Sequence[str], folder: Optional[str] = None) -> ExportJob: ...

@runtime_checkable
class QuicklookExporterPort(Protocol):
    """Preview PNG de una banda categórica con una tabla valor -> RGB."""
    def export_classmap(self, labels: GeoRaster, palette: Mapping[int, Tuple[int, int, int]], out_uri: URI) -> URI: ...

__all__ = ["TableExportPort", "QuicklookExporterPort", "URI"]
