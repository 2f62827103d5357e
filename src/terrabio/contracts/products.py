from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .geo import GeoRaster, validate_profile_compat

# Bandas de los mapas de cambio LandTrendr
STRATA_BAND = "remapped"
YOD_BAND = "yod"
DISTURBED_BAND = "disturbedBinary"
LOSS_THEN_GAIN_BAND = "loss_then_gain"


class AreaOfInterest(BaseModel):
    """
    Región donde se cuentan píxeles (p.ej. límites de fincas).
    - `asset_id`: FeatureCollection de Earth Engine.
    - `geometry`: GeoJSON (Geometry / Feature / FeatureCollection) para backends locales.
    """
    model_config = ConfigDict(frozen=True)

    name: str = "aoi"
    asset_id: Optional[str] = None
    geometry: Optional[Mapping[str, Any]] = None

    @field_validator("asset_id")
    @classmethod
    def _strip_asset(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v2 = v.strip()
        return v2 or None

    @field_validator("geometry")
    @classmethod
    def _non_empty_geojson(cls, v: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
        if v is None:
            return v
        t = v.get("type")
        if t == "FeatureCollection":
            if not v.get("features"):
                raise ValueError("FeatureCollection sin features")
        elif t == "Feature":
            if not v.get("geometry"):
                raise ValueError("Feature sin geometría")
        elif not v.get("coordinates"):
            raise ValueError(f"geometría GeoJSON vacía o no reconocida (type={t})")
        return MappingProxyType(dict(v))

    @model_validator(mode="after")
    def _has_some_source(self) -> "AreaOfInterest":
        if self.asset_id is None and self.geometry is None:
            raise ValueError(f"AreaOfInterest '{self.name}' requiere asset_id o geometry")
        return self


class ChangeMap(BaseModel):
    """
    Mapa de cambio (ganancia/pérdida LandTrendr) con bandas nombradas.
    - `handle` es opaco: ee.Image (Earth Engine) o {banda: GeoRaster} (memoria).
    - Inmutable: las derivaciones devuelven un ChangeMap nuevo con el mismo source_id.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    source_id: str
    scale_m: float = Field(30.0, gt=0)
    band_names: tuple[str, ...]
    handle: Any = None

    @field_validator("source_id")
    @classmethod
    def _non_empty_id(cls, v: str) -> str:
        v2 = v.strip().rstrip("/")
        if not v2:
            raise ValueError("source_id no puede ser vacío")
        return v2

    @field_validator("band_names")
    @classmethod
    def _unique_bands(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("ChangeMap sin bandas")
        if len(set(v)) != len(v):
            raise ValueError(f"bandas duplicadas: {list(v)}")
        return tuple(v)

    @property
    def name(self) -> str:
        """Último segmento del asset id (nombre del asset)."""
        return self.source_id.split("/")[-1]

    def has(self, band: str) -> bool:
        return band in self.band_names

    def require(self, required: Iterable[str]) -> None:
        missing = [b for b in required if b not in self.band_names]
        if missing:
            raise KeyError(f"Faltan bandas requeridas en {self.name}: {missing} (hay {list(self.band_names)})")

    def derive(self, handle: Any, band_names: Sequence[str]) -> "ChangeMap":
        return ChangeMap(source_id=self.source_id, scale_m=self.scale_m, band_names=tuple(band_names), handle=handle)

    @classmethod
    def from_rasters(cls, source_id: str, rasters: Mapping[str, GeoRaster], *, scale_m: float | None = None) -> "ChangeMap":
        """ChangeMap en memoria: todas las bandas en el mismo grid."""
        d = dict(rasters)
        if not d:
            raise ValueError("rasters vacío")
        it = iter(d.values())
        first = next(it)
        for r in it:
            validate_profile_compat(first.profile, r.profile)
        if scale_m is None:
            px, py = first.profile.pixel_size()
            scale_m = min(abs(px), abs(py))
        return cls(source_id=source_id, scale_m=scale_m, band_names=tuple(d.keys()), handle=MappingProxyType(d))
