# src/terrabio/services/pixel_count_service.py
from __future__ import annotations

"""
Conteo de píxeles por categoría sobre mapas de cambio LandTrendr.

Variantes (una exportación cada una):
  • estratos (`remapped`) de pérdida y de ganancia     -> {deal}_{mapa}_pixelCounts
  • año de disturbio (`yod`), sin etiquetas            -> {deal}_{mapa}_pixelCountsYod
  • disturbio binario (yod != 0, 0 fuera de máscara)   -> {deal}_{mapa}_pixelCountsDisturbed
  • substratos pérdida*10 + ganancia (opcional)        -> {deal}_{pérdida}_pixelCountsLossThenGain

Secuencial y sin estado: el primer fallo aborta la corrida y las
exportaciones ya despachadas quedan como están.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import DealConfig
from ..contracts.core import (
    DISTURBANCE_DICTIONARY,
    LOSS_THEN_GAIN_DICTIONARY,
    CategoryDictionary,
    RunMeta,
    Stage,
    UnmappedPolicy,
)
from ..contracts.geo import CRSRef
from ..contracts.products import (
    DISTURBED_BAND,
    LOSS_THEN_GAIN_BAND,
    STRATA_BAND,
    YOD_BAND,
    AreaOfInterest,
    ChangeMap,
)
from ..contracts.stats import CountTable, ExportJob, MetricSuffix
from ..ports.change_maps import ChangeMapOpsPort, ChangeMapSourcePort
from .export_service import ExportService, export_name
from .labeling_service import attach_labels
from .stats_service import DEFAULT_SCALE_M, StatsService, build_request

logger = logging.getLogger(__name__)

# loss_then_gain = pérdida * 10 + ganancia
LOSS_WEIGHT = 10


# ----------------------
# Resultados
# ----------------------

@dataclass(frozen=True)
class PixelCountResult:
    stage: Stage
    suffix: MetricSuffix
    description: str
    table: CountTable
    job: Optional[ExportJob] = None


@dataclass(frozen=True)
class PixelCountReport:
    meta: RunMeta
    results: Tuple[PixelCountResult, ...] = ()

    def descriptions(self) -> Tuple[str, ...]:
        return tuple(r.description for r in self.results)

    def get(self, description: str) -> PixelCountResult:
        for r in self.results:
            if r.description == description:
                return r
        raise KeyError(description)

    def jobs(self) -> Tuple[ExportJob, ...]:
        return tuple(r.job for r in self.results if r.job is not None)

    def wait_all(self, timeout_s: float = 3600.0, poll_s: float = 10.0) -> Tuple[ExportJob, ...]:
        return tuple(j.wait(timeout_s=timeout_s, poll_s=poll_s) for j in self.jobs())


# ----------------------
# Servicio
# ----------------------

@dataclass
class PixelCountService:
    source: Optional[ChangeMapSourcePort] = None
    ops: Optional[ChangeMapOpsPort] = None
    stats: StatsService = field(default_factory=StatsService)
    exporter: ExportService = field(default_factory=ExportService)
    scale_m: float = DEFAULT_SCALE_M
    crs: Optional[CRSRef] = None
    on_unmapped: UnmappedPolicy = UnmappedPolicy.WARN

    def _require_ops(self) -> ChangeMapOpsPort:
        if self.ops is None:
            raise RuntimeError("ChangeMapOpsPort no configurado")
        return self.ops

    def _count(self, image: ChangeMap, band: str, region: AreaOfInterest) -> CountTable:
        req = build_request(image, band, region, scale=self.scale_m, crs=self.crs)
        return self.stats.get_stats(req)

    def _publish(
        self,
        stage: Stage,
        suffix: MetricSuffix,
        deal_name: str,
        change_map: ChangeMap,
        table: CountTable,
    ) -> PixelCountResult:
        description = export_name(deal_name, change_map.source_id, suffix)
        job = self.exporter.dispatch(table, description)
        return PixelCountResult(stage=stage, suffix=suffix, description=description, table=table, job=job)

    # --------- variantes ---------
    def count_strata(
        self,
        change_map: ChangeMap,
        dictionary: CategoryDictionary,
        region: AreaOfInterest,
        *,
        deal_name: str,
        unmask_zero: bool = False,
    ) -> PixelCountResult:
        """Estratos `remapped`. Ganancia: `unmask_zero=True` (sin dato -> 0); pérdida: máscara nativa."""
        ops = self._require_ops()
        strata = ops.select(change_map, STRATA_BAND)
        if unmask_zero:
            strata = ops.unmask(strata, 0)
        table = attach_labels(self._count(strata, STRATA_BAND, region), dictionary, on_unmapped=self.on_unmapped)
        return self._publish(Stage.STRATA, MetricSuffix.STRATA, deal_name, change_map, table)

    def count_disturbance(
        self,
        change_map: ChangeMap,
        region: AreaOfInterest,
        *,
        deal_name: str,
    ) -> Tuple[PixelCountResult, PixelCountResult]:
        ops = self._require_ops()
        yod = ops.select(change_map, YOD_BAND)
        # los años no se etiquetan: readable queda vacío
        yod_table = self._count(yod, YOD_BAND, region)
        yod_res = self._publish(Stage.YOD, MetricSuffix.YOD, deal_name, change_map, yod_table)

        disturbed = ops.rename(ops.unmask(ops.not_equal(yod, 0), 0), DISTURBED_BAND)
        dist_table = attach_labels(
            self._count(disturbed, DISTURBED_BAND, region),
            DISTURBANCE_DICTIONARY,
            on_unmapped=self.on_unmapped,
        )
        dist_res = self._publish(Stage.DISTURBED, MetricSuffix.DISTURBED, deal_name, change_map, dist_table)
        return yod_res, dist_res

    def count_loss_then_gain(
        self,
        loss: ChangeMap,
        gain: ChangeMap,
        region: AreaOfInterest,
        *,
        deal_name: str,
        dictionary: CategoryDictionary = LOSS_THEN_GAIN_DICTIONARY,
    ) -> PixelCountResult:
        ops = self._require_ops()
        loss_strata = ops.select(loss, STRATA_BAND)
        gain_strata = ops.unmask(ops.select(gain, STRATA_BAND), 0)
        combined = ops.weighted_sum(loss_strata, gain_strata, LOSS_WEIGHT, LOSS_THEN_GAIN_BAND)
        table = attach_labels(
            self._count(combined, LOSS_THEN_GAIN_BAND, region), dictionary, on_unmapped=self.on_unmapped
        )
        return self._publish(Stage.LOSS_THEN_GAIN, MetricSuffix.LOSS_THEN_GAIN, deal_name, loss, table)

    # --------- corrida completa ---------
    def run(self, deal: DealConfig) -> PixelCountReport:
        if self.source is None:
            raise RuntimeError("ChangeMapSourcePort no configurado")
        meta = RunMeta(deal_name=deal.deal_name, report_year=deal.report_year)
        logger.info("Conteo de píxeles: deal=%s año=%s", deal.deal_name, deal.report_year)
        loss = self.source.load(deal.loss)
        gain = self.source.load(deal.gain)
        region = deal.farms
        name = deal.deal_name

        steps: List[Tuple[Stage, str, Callable[[], Sequence[PixelCountResult]]]] = [
            (Stage.STRATA, loss.name,
             lambda: [self.count_strata(loss, deal.dictionary_loss, region, deal_name=name)]),
            (Stage.STRATA, gain.name,
             lambda: [self.count_strata(gain, deal.dictionary_gain, region, deal_name=name, unmask_zero=True)]),
            (Stage.YOD, loss.name, lambda: self.count_disturbance(loss, region, deal_name=name)),
            (Stage.YOD, gain.name, lambda: self.count_disturbance(gain, region, deal_name=name)),
        ]
        if deal.loss_then_gain:
            steps.append((Stage.LOSS_THEN_GAIN, loss.name,
                          lambda: [self.count_loss_then_gain(loss, gain, region, deal_name=name)]))

        results: List[PixelCountResult] = []
        for stage, map_name, step in steps:
            logger.info("[%s] %s", stage.value, map_name)
            try:
                results.extend(step())
            except Exception:
                logger.error("Falló la etapa %s sobre %s; %d exportación(es) ya despachadas",
                             stage.value, map_name, len(results))
                raise
        report = PixelCountReport(meta=meta.end_now(), results=tuple(results))
        logger.info("Conteo de píxeles terminado: %d exportaciones en %.1f s",
                    len(results), report.meta.duration_s or 0.0)
        return report


__all__ = ["PixelCountResult", "PixelCountReport", "PixelCountService", "LOSS_WEIGHT"]
