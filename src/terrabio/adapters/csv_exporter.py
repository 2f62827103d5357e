## `src/terrabio/adapters/csv_exporter.py`

from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from ..contracts.stats import CountTable, ExportJob, ExportState
from ..ports.exporters import TableExportPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CsvTableExporter(TableExportPort):
    """Exporter local: escribe `{out_dir}/{folder}/{description}.csv`.

    Convención:
      - cabecera = `selectors`, en ese orden (columnas ausentes -> "");
      - una fila por CountRow, ordenadas por map_value;
      - sobre-escribe si existe (sin política de colisión, igual que Drive).
    La escritura es síncrona: el ExportJob vuelve ya COMPLETED.
    """
    out_dir: str

    def export_table(self, table: CountTable, description: str, selectors: Sequence[str], folder: Optional[str] = None) -> ExportJob:
        if not selectors:
            raise ValueError("selectors vacío")
        base = os.path.join(self.out_dir, folder) if folder else self.out_dir
        os.makedirs(base, exist_ok=True)
        out_uri = os.path.join(base, f"{description}.csv")
        with open(out_uri, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(list(selectors))
            for rec in table.records():
                writer.writerow([rec.get(h, "") for h in selectors])
        logger.info("CSV escrito: %s (%d filas)", out_uri, len(table))
        return ExportJob(
            description=description,
            selectors=tuple(selectors),
            destination=out_uri,
            state=ExportState.COMPLETED,
        )


__all__ = ["CsvTableExporter"]
