# src/terrabio/contracts/stats.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .core import ReducerKind
from .geo import CRSRef
from .products import AreaOfInterest, ChangeMap

logger = logging.getLogger(__name__)

# Columnas exportadas, en este orden
EXPORT_SELECTORS: Tuple[str, ...] = ("map_name", "map_value", "count", "readable")

Number = Union[int, float]


class MetricSuffix(str, Enum):
    STRATA = "pixelCounts"
    YOD = "pixelCountsYod"
    DISTURBED = "pixelCountsDisturbed"
    LOSS_THEN_GAIN = "pixelCountsLossThenGain"


# ----------------------
# Petición de estadística zonal
# ----------------------

@dataclass(frozen=True)
class StatsRequest:
    """Descriptor inmutable de una reducción zonal (imagen, banda, reductor, región, escala)."""
    image: ChangeMap
    stats_band: str
    region: AreaOfInterest
    reducer: ReducerKind = ReducerKind.COUNT
    scale: float = 30.0
    group_by: Optional[str] = None
    crs: Optional[CRSRef] = None

    @property
    def effective_group_by(self) -> str:
        # sin group_by explícito: una fila por valor distinto de la propia banda
        return self.group_by or self.stats_band


# ----------------------
# Filas y tablas
# ----------------------

@dataclass(frozen=True)
class CountRow:
    map_name: str
    map_value: Number
    count: Number
    readable: Optional[str] = None

    def record(self, stat_column: str = "count") -> dict[str, Any]:
        return {
            "map_name": self.map_name,
            "map_value": self.map_value,
            stat_column: self.count,
            "readable": "" if self.readable is None else self.readable,
        }


@dataclass(frozen=True)
class CountTable:
    """Tabla (map_value ordenado) producida por una reducción zonal."""
    rows: Tuple[CountRow, ...] = ()
    reducer: ReducerKind = ReducerKind.COUNT

    def __post_init__(self):
        object.__setattr__(self, "rows", tuple(sorted(self.rows, key=lambda r: r.map_value)))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def selectors(self) -> Tuple[str, ...]:
        return ("map_name", "map_value", self.reducer.value, "readable")

    def total(self) -> Number:
        return sum(r.count for r in self.rows)

    def as_dict(self) -> dict[Number, Number]:
        return {r.map_value: r.count for r in self.rows}

    def labels(self) -> dict[Number, Optional[str]]:
        return {r.map_value: r.readable for r in self.rows}

    def records(self) -> list[dict[str, Any]]:
        return [r.record(self.reducer.value) for r in self.rows]

    def with_rows(self, rows: Sequence[CountRow]) -> "CountTable":
        return CountTable(rows=tuple(rows), reducer=self.reducer)


# ----------------------
# Resultado de una búsqueda en el diccionario
# ----------------------

@dataclass(frozen=True)
class Labeled:
    value: Number
    label: str

    @property
    def mapped(self) -> bool:
        return True


@dataclass(frozen=True)
class Unmapped:
    value: Number
    dictionary: str = ""

    @property
    def mapped(self) -> bool:
        return False


LabelResult = Union[Labeled, Unmapped]


# ----------------------
# Jobs de exportación
# ----------------------

class ExportState(str, Enum):
    SUBMITTED = "SUBMITTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"

    @property
    def terminal(self) -> bool:
        return self in (ExportState.COMPLETED, ExportState.FAILED, ExportState.CANCELLED, ExportState.TIMEOUT)

    @classmethod
    def from_backend(cls, state: Optional[str]) -> "ExportState":
        # estados de ee.batch.Task: UNSUBMITTED, READY, RUNNING, COMPLETED, FAILED, CANCEL_REQUESTED, CANCELLED
        s = (state or "").upper()
        if s in ("UNSUBMITTED", "READY", "SUBMITTED"):
            return cls.SUBMITTED
        if s in ("RUNNING", "CANCEL_REQUESTED"):
            return cls.RUNNING
        if s in cls.__members__:
            return cls[s]
        raise ValueError(f"estado de tarea desconocido: {state}")


class TaskHandle(Protocol):
    """Lo mínimo de ee.batch.Task que usamos."""
    def status(self) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class ExportJob:
    """
    Handle de una exportación despachada. El llamador puede ignorarlo
    (fire-and-forget) o esperar con `wait()`.
    """
    description: str
    selectors: Tuple[str, ...]
    destination: str
    state: ExportState = ExportState.SUBMITTED
    task: Optional[TaskHandle] = field(default=None, compare=False, repr=False)
    error: Optional[str] = None

    def refresh(self) -> "ExportJob":
        if self.task is None or self.state.terminal:
            return self
        status = self.task.status()
        return replace(
            self,
            state=ExportState.from_backend(status.get("state")),
            error=status.get("error_message"),
        )

    def wait(self, timeout_s: float = 3600.0, poll_s: float = 10.0) -> "ExportJob":
        if self.task is None:
            # sin tarea remota el estado no puede cambiar
            return self
        t0 = time.monotonic()
        job = self.refresh()
        last = job.state
        while not job.state.terminal:
            if time.monotonic() - t0 > timeout_s:
                logger.warning("Export %s: timeout tras %.0f s", self.description, timeout_s)
                return replace(job, state=ExportState.TIMEOUT)
            time.sleep(poll_s)
            job = job.refresh()
            if job.state != last:
                logger.debug("Export %s: %s", self.description, job.state.value)
                last = job.state
        if job.state is ExportState.FAILED:
            logger.warning("Export %s falló: %s", self.description, job.error)
        return job


__all__ = [
    "EXPORT_SELECTORS", "MetricSuffix", "StatsRequest", "CountRow", "CountTable",
    "Labeled", "Unmapped", "LabelResult", "ExportState", "TaskHandle", "ExportJob",
]
