# src/terrabio/contracts/geo.py
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Literal, NamedTuple, Optional, Tuple

import numpy as np
import numpy.typing as npt

# (x0, ancho de píxel, rotación x, y0, rotación y, alto de píxel), orden GDAL
GeoTransform = Tuple[float, float, float, float, float, float]
DTypeStr = Literal["int8", "uint8", "uint16", "int16", "uint32", "int32", "float32", "float64"]


class Bounds(NamedTuple):
    minx: float
    miny: float
    maxx: float
    maxy: float


@dataclass(frozen=True)
class CRSRef:
    """CRS como código EPSG o texto WKT. Earth Engine acepta ambos como string."""
    wkt: Optional[str] = None
    epsg: Optional[int] = None

    @classmethod
    def from_epsg(cls, code: int) -> "CRSRef":
        return cls(epsg=int(code))

    @classmethod
    def from_wkt(cls, wkt: str) -> "CRSRef":
        return cls(wkt=wkt)

    @classmethod
    def parse(cls, text: str) -> "CRSRef":
        s = str(text).strip()
        if not s:
            raise ValueError("CRS vacío")
        prefix, _, code = s.partition(":")
        if prefix.upper() == "EPSG" and code.strip().isdigit():
            return cls.from_epsg(int(code))
        return cls.from_wkt(s)

    def code(self) -> str:
        """'EPSG:<n>' o el WKT; es lo que se pasa como `crs=` a reduceRegion."""
        if self.epsg is not None:
            return f"EPSG:{self.epsg}"
        if self.wkt:
            return self.wkt
        raise ValueError("CRSRef sin EPSG ni WKT")

    def equals(self, other: "CRSRef") -> bool:
        # EPSG contra EPSG o WKT contra WKT (espacios normalizados); mezclas -> False
        if self.epsg is not None or other.epsg is not None:
            return self.epsg == other.epsg
        return _squash(self.wkt) == _squash(other.wkt)


def _squash(wkt: Optional[str]) -> str:
    return "".join((wkt or "").upper().split())


@dataclass(frozen=True)
class GeoProfile:
    """Grid de una banda: dimensiones, transform, CRS y valor nodata."""
    dtype: DTypeStr
    width: int
    height: int
    transform: GeoTransform
    crs: CRSRef
    nodata: Optional[float] = None

    def pixel_size(self) -> Tuple[float, float]:
        return (self.transform[1], self.transform[5])

    @property
    def bounds(self) -> Bounds:
        x0, px, rx, y0, ry, py = self.transform
        xs = (x0, x0 + self.width * px + self.height * rx)
        ys = (y0, y0 + self.width * ry + self.height * py)
        return Bounds(min(xs), min(ys), max(xs), max(ys))

    def with_dtype(self, dtype: DTypeStr, nodata: Optional[float]) -> "GeoProfile":
        return replace(self, dtype=dtype, nodata=nodata)


@dataclass(frozen=True)
class GeoRaster:
    """Banda categórica en memoria. Solo lectura: el buffer se congela al construir."""
    data: "npt.NDArray[Any]"  # type: ignore[valid-type]
    profile: GeoProfile

    def __post_init__(self):
        if self.data.shape != (self.profile.height, self.profile.width):
            raise ValueError(
                f"forma {self.data.shape} no coincide con el perfil ({self.profile.height}, {self.profile.width})"
            )
        self.data.setflags(write=False)

    def valid_mask(self) -> "npt.NDArray[np.bool_]":
        """True donde hay dato: ni nodata ni NaN (equivalente a la máscara de Earth Engine)."""
        arr = self.data
        mask = ~np.isnan(arr) if arr.dtype.kind == "f" else np.ones(arr.shape, dtype=bool)
        nd = self.profile.nodata
        if nd is not None and not math.isnan(nd):
            mask &= arr != nd
        return mask


def pixel_centers(profile: GeoProfile) -> Tuple["npt.NDArray[np.float64]", "npt.NDArray[np.float64]"]:
    """Coordenadas (x, y) del centro de cada píxel, con forma (height, width)."""
    x0, px, rx, y0, ry, py = profile.transform
    rows, cols = np.indices((profile.height, profile.width), dtype=np.float64) + 0.5
    return x0 + cols * px + rows * rx, y0 + cols * ry + rows * py


def validate_profile_compat(a: GeoProfile, b: GeoProfile, *, tol: float = 1e-6) -> None:
    """Dos bandas combinables píxel a píxel: mismo CRS, tamaño y transform (dtype/nodata libres)."""
    if not a.crs.equals(b.crs):
        raise ValueError(f"CRS distinto: {a.crs} vs {b.crs}")
    if (a.width, a.height) != (b.width, b.height):
        raise ValueError(f"tamaño distinto: {a.width}x{a.height} vs {b.width}x{b.height}")
    if any(abs(x - y) > tol for x, y in zip(a.transform, b.transform)):
        raise ValueError("grids desalineados (transform distinto)")


__all__ = [
    "GeoTransform", "DTypeStr", "Bounds", "CRSRef", "GeoProfile", "GeoRaster",
    "pixel_centers", "validate_profile_compat",
]
