# src/terrabio/contracts/sampling.py
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from .core import category_key

Number = Union[int, float]

# mínimo de puntos de validación (CEO) por estrato, más un margen
MIN_POINTS_PER_STRATUM = 33
BUFFER_FRACTION = 0.05


def target_points(min_points: int = MIN_POINTS_PER_STRATUM, buffer_fraction: float = BUFFER_FRACTION) -> int:
    """Puntos por estrato: min_points * (1 + margen), redondeo al entero más cercano (.5 hacia arriba)."""
    if min_points < 0 or buffer_fraction < 0:
        raise ValueError("min_points y buffer_fraction deben ser >= 0")
    return int(math.floor(min_points * (1 + buffer_fraction) + 0.5))


@dataclass(frozen=True)
class SamplePoint:
    """Centro de píxel muestreado, con los valores de las bandas del mapa en ese píxel."""
    x: float
    y: float
    values: Mapping[str, Number] = field(default_factory=dict)
    phase: str = "initial"

    def record(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "sampling_phase": self.phase, **dict(self.values)}


@dataclass(frozen=True)
class SampleSet:
    points: Tuple[SamplePoint, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def histogram(self, band: str, codes: Iterable[Any] = ()) -> dict[int, int]:
        """Puntos por estrato de `band`; los `codes` dados aparecen aunque tengan 0."""
        counts = {int(c): 0 for c in codes}
        for p in self.points:
            key = category_key(p.values.get(band))
            if key is not None:
                counts[key] = counts.get(key, 0) + 1
        return counts

    def with_phase(self, phase: str) -> "SampleSet":
        return SampleSet(tuple(replace(p, phase=phase) for p in self.points))

    def merge(self, other: "SampleSet") -> "SampleSet":
        return SampleSet(self.points + tuple(other.points))

    def records(self) -> list[dict[str, Any]]:
        return [p.record() for p in self.points]

    def columns(self) -> Tuple[str, ...]:
        cols = ["x", "y", "sampling_phase"]
        for p in self.points:
            for k in p.values:
                if k not in cols:
                    cols.append(k)
        return tuple(cols)


def points_needed(histogram: Mapping[Any, int], target: int, codes: Optional[Iterable[Any]] = None) -> dict[int, int]:
    """Puntos que faltan por estrato para llegar a `target` (nunca negativo)."""
    keys = [int(c) for c in codes] if codes is not None else [int(k) for k in histogram]
    return {k: max(int(target) - int(histogram.get(k, 0)), 0) for k in keys}


__all__ = [
    "MIN_POINTS_PER_STRATUM", "BUFFER_FRACTION", "target_points",
    "SamplePoint", "SampleSet", "points_needed",
]
