## `src/terrabio/adapters/pillow_quicklook.py`
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Tuple

import numpy as np
from PIL import Image

from ..contracts.geo import GeoRaster
from ..ports.exporters import QuicklookExporterPort, URI


@dataclass(frozen=True)
class PillowQuicklookExporter(QuicklookExporterPort):
    """PNG RGB de una banda categórica. Píxeles enmascarados o sin color -> `background`."""
    background: Tuple[int, int, int] = (0, 0, 0)

    def export_classmap(self, labels: GeoRaster, palette: Mapping[int, Tuple[int, int, int]], out_uri: URI) -> URI:
        if labels.data.ndim != 2:
            raise ValueError("Se esperaba banda 2D")
        h, w = labels.data.shape
        rgb = np.zeros((h, w, 3), dtype=np.uint8)
        rgb[...] = self.background
        valid = labels.valid_mask()
        for i in np.unique(labels.data[valid]):
            color = palette.get(int(i))
            if color is not None:
                rgb[valid & (labels.data == i)] = color
        os.makedirs(os.path.dirname(out_uri) or ".", exist_ok=True)
        Image.fromarray(rgb).save(out_uri)
        return out_uri


__all__ = ["PillowQuicklookExporter"]
