from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from ..adapters.csv_exporter import CsvTableExporter
from ..adapters.memory_backend import InMemoryBackend
from ..adapters.pillow_quicklook import PillowQuicklookExporter
from ..adapters.rasterio_change_map_reader import RasterioChangeMapReader
from ..adapters.shapely_geometry import ShapelyGeometryBackend
from ..config import DealConfig, Settings
from ..contracts.sampling import MIN_POINTS_PER_STRATUM
from ..ports.change_maps import ChangeMapOpsPort, ChangeMapSourcePort
from ..ports.exporters import QuicklookExporterPort, TableExportPort
from ..ports.geometry import GeometryPort
from ..ports.zonal_stats import ZonalStatsPort
from ..services.export_service import ExportService
from ..services.geometry_service import GeometryService
from ..services.pixel_count_service import PixelCountService
from ..services.sampling_service import SamplingService
from ..services.stats_service import StatsService

logger = logging.getLogger(__name__)

BACKEND_KINDS = ("earthengine", "local")


@dataclass(frozen=True)
class Backends:
    kind: str
    source: ChangeMapSourcePort
    ops: ChangeMapOpsPort
    zonal: ZonalStatsPort
    exporter: TableExportPort
    geometry: GeometryPort
    quicklook: Optional[QuicklookExporterPort] = None


def _read_yaml(path: Path) -> Mapping[str, Any]:
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{path}: se esperaba un mapping YAML")
    return data


def load_settings_from_yaml(path: Path) -> Settings:
    return Settings(**_read_yaml(path))


def _load_area(area: Any, base: Path) -> Any:
    # `geojson: archivo` se resuelve relativo al YAML del deal
    if isinstance(area, Mapping) and "geojson" in area:
        d = dict(area)
        gpath = Path(d.pop("geojson"))
        gpath = gpath if gpath.is_absolute() else (base / gpath)
        d["geometry"] = json.loads(gpath.read_text(encoding="utf-8"))
        d.setdefault("name", gpath.stem)
        return d
    return area


def load_deal_from_yaml(path: Path) -> DealConfig:
    path = Path(path)
    data = dict(_read_yaml(path))
    base = path.parent.resolve()
    for key in ("farms", "aoi"):
        if data.get(key) is not None:
            data[key] = _load_area(data[key], base)
    # ids locales relativos al YAML; los assets de Earth Engine no empiezan por '.'
    for key in ("gain", "loss"):
        v = data.get(key)
        if isinstance(v, str) and v.startswith("."):
            data[key] = str((base / v).resolve())
    return DealConfig(**data)


def build_backends(settings: Settings, kind: str = "local", *, deal: Optional[DealConfig] = None) -> Backends:
    if kind == "local":
        mem = InMemoryBackend()
        return Backends(
            kind=kind,
            source=RasterioChangeMapReader(),
            ops=mem,
            zonal=mem,
            exporter=CsvTableExporter(out_dir=str(settings.export_dir)),
            geometry=ShapelyGeometryBackend(),
            quicklook=PillowQuicklookExporter(),
        )
    if kind == "earthengine":
        # import diferido: earthengine-api solo hace falta para este backend
        from ..adapters.earthengine_backend import EarthEngineBackend, initialize
        from ..adapters.earthengine_geometry import EarthEngineGeometryBackend

        tag = settings.workload_tag or (deal.workload_tag if deal is not None else None)
        initialize(project=settings.gee_project, workload_tag=tag)
        ee_backend = EarthEngineBackend(default_scale_m=settings.scale_m)
        return Backends(
            kind=kind,
            source=ee_backend,
            ops=ee_backend,
            zonal=ee_backend,
            exporter=ee_backend,
            geometry=EarthEngineGeometryBackend(),
        )
    raise ValueError(f"backend desconocido: {kind} (opciones: {', '.join(BACKEND_KINDS)})")


def build_pixel_count_service(settings: Settings, backends: Backends) -> PixelCountService:
    return PixelCountService(
        source=backends.source,
        ops=backends.ops,
        stats=StatsService(zonal=backends.zonal),
        exporter=ExportService(exporter=backends.exporter, folder=settings.drive_folder),
        scale_m=settings.scale_m,
        crs=settings.crs_ref(),
        on_unmapped=settings.unmapped_policy,
    )


def build_geometry_service(backends: Backends) -> GeometryService:
    return GeometryService(geometry=backends.geometry)


def build_sampling_service(settings: Settings, backends: Backends, *, min_points: int = MIN_POINTS_PER_STRATUM, seed: int = 10) -> SamplingService:
    return SamplingService(ops=backends.ops, min_points=min_points, seed=seed, scale_m=settings.scale_m)
