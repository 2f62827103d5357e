# src/terrabio/contracts/palette.py
from __future__ import annotations

"""
Colores estandarizados para todos los deals (colores oficiales CIAT).
Earth Engine espera los códigos hex SIN '#': usar `ee_hex()`.
"""

from types import MappingProxyType
from typing import Mapping, Sequence

from .core import RGB8

# Usos de suelo
INTERVENTION = RGB8.from_hex("F5D226")        # amarillo/dorado
INTERVENTION_2 = RGB8.from_hex("C4A81E")      # dorado oscuro (segunda clase de intervención)
COUNTERFACTUAL = RGB8.from_hex("F68B33")      # naranja
REFERENCE = RGB8.from_hex("0088C6")           # celeste
REGENERATION = RGB8.from_hex("8EBF3F")        # verde claro

AOI = RGB8.from_hex("19191A")                 # negro
FARM = RGB8.from_hex("FFFFFF")                # blanco
FARM_UNDESIGNATED = RGB8.from_hex("CECFD0")   # gris claro

# Cambio
DEFORESTATION = RGB8.from_hex("993399")       # púrpura
DEGRADATION = RGB8.from_hex("DF9EDF")         # púrpura claro
STABLE_FOREST = RGB8.from_hex("009933")       # verde
GAIN = RGB8.from_hex("003580")                # azul, contrasta con el basemap satelital

BACKGROUND = RGB8.from_hex("9D9FA2")
DARK_GREY = RGB8.from_hex("414042")
RED = RGB8.from_hex("CC3333")

COLORS: Mapping[str, RGB8] = MappingProxyType({
    "intervention": INTERVENTION,
    "intervention2": INTERVENTION_2,
    "counterfactual": COUNTERFACTUAL,
    "reference": REFERENCE,
    "regeneration": REGENERATION,
    "aoi": AOI,
    "farm": FARM,
    "farm_undesignated": FARM_UNDESIGNATED,
    "deforestation": DEFORESTATION,
    "degradation": DEGRADATION,
    "stable_forest": STABLE_FOREST,
    "gain": GAIN,
    "background": BACKGROUND,
    "dark_grey": DARK_GREY,
    "red": RED,
})

# Paletas indexadas por el valor del estrato (ver diccionarios en core.py)
PALETTE_LOSS: tuple[RGB8, ...] = (STABLE_FOREST, DEGRADATION, DEFORESTATION, BACKGROUND)  # 1..4
PALETTE_GAIN: tuple[RGB8, ...] = (GAIN,)                                                   # 1
PALETTE_GAIN_UNMASKED: tuple[RGB8, ...] = (BACKGROUND, GAIN)                               # 0..1

PALETTES: Mapping[str, tuple[tuple[RGB8, ...], int]] = MappingProxyType({
    # nombre -> (paleta, valor mínimo)
    "loss": (PALETTE_LOSS, 1),
    "gain": (PALETTE_GAIN, 1),
    "gain_unmasked": (PALETTE_GAIN_UNMASKED, 0),
})


def ee_hex(color: RGB8) -> str:
    return color.to_hex().lstrip("#")


def vis_params(palette: Sequence[RGB8], vmin: int = 0) -> dict:
    """Parámetros de visualización estilo Earth Engine (min/max/palette)."""
    if not palette:
        raise ValueError("paleta vacía")
    return {"min": vmin, "max": vmin + len(palette) - 1, "palette": [ee_hex(c) for c in palette]}


def named_vis_params(name: str) -> dict:
    try:
        pal, vmin = PALETTES[name]
    except KeyError:
        raise KeyError(f"paleta desconocida: {name} (disponibles: {sorted(PALETTES)})") from None
    return vis_params(pal, vmin)


def lookup_table(palette: Sequence[RGB8], vmin: int = 0) -> dict[int, tuple[int, int, int]]:
    """valor -> (R,G,B), para quicklooks locales."""
    return {vmin + i: c.as_tuple() for i, c in enumerate(palette)}
