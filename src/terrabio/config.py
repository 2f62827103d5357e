# src/terrabio/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .contracts.core import (
    GAIN_DICTIONARY,
    LOSS_DICTIONARY,
    WORKLOAD_TAGS,
    CategoryDictionary,
    UnmappedPolicy,
)
from .contracts.geo import CRSRef
from .contracts.products import AreaOfInterest


class Settings(BaseSettings):
    """
    Config del entorno de ejecución (no del deal). No toca disco.
    Debe ser construida y provista por composition/di.py (CLI).
    Variables de entorno: TERRABIO_<CAMPO>, o `.env`.
    """
    project_root: Path = Path(".")

    # --- Earth Engine ---
    gee_project: Optional[str] = None
    workload_tag: Optional[str] = None   # si None, se deduce del deal (WORKLOAD_TAGS)
    drive_folder: Optional[str] = None

    # --- estadística zonal ---
    scale_m: float = Field(30.0, gt=0)
    # "EPSG:32721" o WKT; se parsea en crs_ref()
    crs: Optional[str] = None

    # --- salidas locales (relativas a project_root) ---
    export_dir: Path = Path("work/exports")

    unmapped_policy: UnmappedPolicy = UnmappedPolicy.WARN

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TERRABIO_",
        extra="forbid",
        frozen=True,
    )

    @field_validator("project_root", mode="before")
    @classmethod
    def _abs_root(cls, v: Path | str) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("crs", mode="before")
    @classmethod
    def _blank_crs(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v2 = str(v).strip()
        return v2 or None

    @field_validator("export_dir", mode="after")
    @classmethod
    def _rel_to_root(cls, p: Path, info) -> Path:
        root: Path = info.data.get("project_root") or Path(".").resolve()
        return p if p.is_absolute() else (root / p)

    def crs_ref(self) -> Optional[CRSRef]:
        return CRSRef.parse(self.crs) if self.crs else None


class DealConfig(BaseModel):
    """
    Parámetros de un deal/año. Inmutable; se pasa explícito a cada flujo.
    `gain`/`loss` son ids de los mapas de cambio (asset de Earth Engine o ruta local).
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    deal_name: str
    report_year: int = Field(..., ge=1984)
    farms: AreaOfInterest
    aoi: Optional[AreaOfInterest] = None
    gain: str
    loss: str
    dictionary_gain: CategoryDictionary = GAIN_DICTIONARY
    dictionary_loss: CategoryDictionary = LOSS_DICTIONARY
    loss_then_gain: bool = False

    @field_validator("deal_name", "gain", "loss")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("no puede ser vacío")
        return v2

    @property
    def workload_tag(self) -> Optional[str]:
        return WORKLOAD_TAGS.get(self.deal_name.lower())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Instancia cacheada. Úsala SOLO desde composition/di.py o CLI.
    Prohibido usarla en services/. Para tests, recuerda limpiar:
        get_settings.cache_clear()
    """
    return Settings()


__all__ = ["Settings", "DealConfig", "get_settings"]
