# src/terrabio/contracts/core.py
from __future__ import annotations

import math
import numbers
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# -------------------------
# Colores tipados
# -------------------------
class RGB8(BaseModel):
    model_config = ConfigDict(frozen=True)
    r: int = Field(200, ge=0, le=255)
    g: int = Field(200, ge=0, le=255)
    b: int = Field(200, ge=0, le=255)
    def as_tuple(self) -> tuple[int, int, int]: return (self.r, self.g, self.b)
    def to_hex(self) -> str: return f"#{self.r:02X}{self.g:02X}{self.b:02X}"

    @classmethod
    def from_hex(cls, code: str) -> "RGB8":
        s = code.strip().lstrip("#")
        if len(s) != 6:
            raise ValueError(f"color hex inválido: {code}")
        return cls(r=int(s[0:2], 16), g=int(s[2:4], 16), b=int(s[4:6], 16))

# -------------------------
# Reductores (estadística zonal)
# -------------------------
class ReducerKind(str, Enum):
    COUNT = "count"
    SUM = "sum"
    MEAN = "mean"

# Qué hacer con categorías sin etiqueta en el diccionario
class UnmappedPolicy(str, Enum):
    IGNORE = "ignore"
    WARN = "warn"
    ERROR = "error"

# -------------------------
# Diccionarios de categorías
# -------------------------
def category_key(code: Any) -> Optional[int]:
    """Código -> clave entera del diccionario; None si no es un entero exacto (2.5, NaN, inf, 'x')."""
    if isinstance(code, numbers.Integral):
        return int(code)
    try:
        f = float(code)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(f) or not f.is_integer():
        return None
    return int(f)


class CategoryDictionary(BaseModel):
    """
    Código entero de categoría -> etiqueta legible.
    Inmutable; claves "1" (YAML/JSON) se normalizan a int.
    """
    model_config = ConfigDict(frozen=True)
    name: str = "custom"
    entries: Mapping[int, str]

    @model_validator(mode="before")
    @classmethod
    def _wrap_plain_mapping(cls, v: Any) -> Any:
        # Acepta {1: "StableForest", ...} además de {name:, entries:}
        if isinstance(v, Mapping) and "entries" not in v:
            return {"entries": dict(v)}
        return v

    @field_validator("entries")
    @classmethod
    def _freeze_entries(cls, v: Mapping[int, str]) -> Mapping[int, str]:
        d = {int(k): str(lbl) for k, lbl in dict(v).items()}
        if not d:
            raise ValueError("el diccionario de categorías no puede ser vacío")
        for k, lbl in d.items():
            if not lbl.strip():
                raise ValueError(f"etiqueta vacía para la categoría {k}")
        return MappingProxyType(dict(sorted(d.items())))

    def get(self, code: Any) -> Optional[str]:
        key = category_key(code)
        return None if key is None else self.entries.get(key)

    def codes(self) -> tuple[int, ...]:
        return tuple(self.entries.keys())

    def __contains__(self, code: object) -> bool:
        return self.get(code) is not None

    def __len__(self) -> int:
        return len(self.entries)

    # hashable: pydantic no copia defaults hashables (un mappingproxy no se puede deepcopy)
    def __hash__(self) -> int:
        return hash((self.name, tuple(self.entries.items())))


GAIN_DICTIONARY = CategoryDictionary(name="gain", entries={0: "NoGain", 1: "Gain"})
LOSS_DICTIONARY = CategoryDictionary(name="loss", entries={
    1: "StableForest",
    2: "Degradation",
    3: "Deforestation",
    4: "NonForest",
})
DISTURBANCE_DICTIONARY = CategoryDictionary(name="disturbance", entries={0: "NoDisturbance", 1: "Disturbance"})
# substratos pérdida*10 + ganancia
LOSS_THEN_GAIN_DICTIONARY = CategoryDictionary(name="loss_then_gain", entries={
    10: "StableForest NoGain",
    11: "StableForest Gain",
    20: "Degradation NoGain",
    21: "Degradation Gain",
    30: "Deforestation NoGain",
    31: "Deforestation Gain",
    40: "NonForest NoGain",
    41: "NonForest Gain",
})

# -------------------------
# Workload tags de Earth Engine por deal
# -------------------------
# Los tags no deben contener nombres ni identificadores
WORKLOAD_TAGS: Mapping[str, str] = MappingProxyType({
    "horta": "terrabio-h",
    "apui": "terrabio-ca",
    "inocas": "terrabio-i",
    "reforesterra": "terrabio-r",
})

# -------------------------
# Ejecuciones / auditoría
# -------------------------
class Stage(str, Enum):
    STRATA = "strata"
    YOD = "yod"
    DISTURBED = "disturbed"
    LOSS_THEN_GAIN = "loss_then_gain"

class RunMeta(BaseModel):
    model_config = ConfigDict(frozen=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    deal_name: str
    report_year: int | None = None
    notes: str | None = None
    ended_at: datetime | None = None

    def end_now(self) -> "RunMeta":
        return self.model_copy(update={"ended_at": datetime.now(timezone.utc)})

    @property
    def duration_s(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()
