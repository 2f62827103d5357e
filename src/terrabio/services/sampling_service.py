# src/terrabio/services/sampling_service.py
from __future__ import annotations

"""
Puntos de validación (CEO) estratificados sobre los mismos estratos que se cuentan.

Se completa una muestra existente hasta `target` puntos por estrato:
  • pérdida: estratos `remapped` del mapa de pérdida, en toda la región;
  • ganancia: `remapped` con 0 = NoGain (unmask), opcionalmente solo en intervenciones.
Cada paso usa seed + 1 respecto del anterior y nunca repite un píxel ya elegido.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..contracts.core import GAIN_DICTIONARY, LOSS_DICTIONARY, CategoryDictionary
from ..contracts.products import STRATA_BAND, AreaOfInterest, ChangeMap
from ..contracts.sampling import (
    BUFFER_FRACTION,
    MIN_POINTS_PER_STRATUM,
    SampleSet,
    points_needed,
    target_points,
)
from ..ports.change_maps import ChangeMapOpsPort
from .stats_service import DEFAULT_SCALE_M

logger = logging.getLogger(__name__)

PHASE_LOSS = "additional_loss"
PHASE_GAIN = "additional_gain"


@dataclass
class SamplingService:
    ops: Optional[ChangeMapOpsPort] = None
    min_points: int = MIN_POINTS_PER_STRATUM
    buffer_fraction: float = BUFFER_FRACTION
    seed: int = 10
    scale_m: float = DEFAULT_SCALE_M

    @property
    def target(self) -> int:
        return target_points(self.min_points, self.buffer_fraction)

    def _require_ops(self) -> ChangeMapOpsPort:
        if self.ops is None:
            raise RuntimeError("ChangeMapOpsPort no configurado")
        return self.ops

    def top_up(
        self,
        change_map: ChangeMap,
        region: AreaOfInterest,
        dictionary: CategoryDictionary,
        existing: SampleSet = SampleSet(),
        *,
        class_band: str = STRATA_BAND,
        phase: str = PHASE_LOSS,
        seed: Optional[int] = None,
    ) -> SampleSet:
        """Agrega a `existing` los puntos que faltan por estrato del diccionario."""
        ops = self._require_ops()
        codes = dictionary.codes()
        hist = existing.histogram(class_band, codes)
        needed = points_needed(hist, self.target, codes)
        if not any(needed.values()):
            logger.info("%s: todos los estratos tienen >= %d puntos", change_map.name, self.target)
            return existing
        logger.info("%s: puntos adicionales por estrato %s", change_map.name, needed)
        extra = ops.stratified_sample(
            change_map,
            class_band,
            region,
            needed,
            scale=self.scale_m,
            seed=self.seed if seed is None else seed,
            exclude=existing.points,
        ).with_phase(phase)
        merged = existing.merge(extra)
        short = {k: v for k, v in merged.histogram(class_band, codes).items() if k in needed and v < self.target}
        if short:
            logger.warning("%s: estratos con menos de %d puntos: %s", change_map.name, self.target, short)
        return merged

    def sample_strata(
        self,
        loss: ChangeMap,
        gain: ChangeMap,
        region: AreaOfInterest,
        *,
        loss_dictionary: CategoryDictionary = LOSS_DICTIONARY,
        gain_dictionary: CategoryDictionary = GAIN_DICTIONARY,
        gain_region: Optional[AreaOfInterest] = None,
        existing_loss: SampleSet = SampleSet(),
        existing_gain: SampleSet = SampleSet(),
    ) -> Tuple[SampleSet, SampleSet]:
        ops = self._require_ops()
        loss_pts = self.top_up(loss, region, loss_dictionary, existing_loss, phase=PHASE_LOSS, seed=self.seed)
        gain_pts = self.top_up(
            ops.unmask(gain, 0),
            gain_region or region,
            gain_dictionary,
            existing_gain,
            phase=PHASE_GAIN,
            seed=self.seed + 1,
        )
        return loss_pts, gain_pts


__all__ = ["SamplingService", "PHASE_LOSS", "PHASE_GAIN"]
