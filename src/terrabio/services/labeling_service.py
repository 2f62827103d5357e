# src/terrabio/services/labeling_service.py
from __future__ import annotations

import logging
from typing import Any

from ..contracts.core import CategoryDictionary, UnmappedPolicy
from ..contracts.stats import CountRow, CountTable, Labeled, LabelResult, Unmapped

logger = logging.getLogger(__name__)


class UnmappedCategoryError(KeyError):
    """Valores de categoría sin entrada en el diccionario (política ERROR)."""

    def __init__(self, dictionary: str, values: tuple):
        super().__init__(f"categorías sin etiqueta en '{dictionary}': {list(values)}")
        self.dictionary = dictionary
        self.values = values


def lookup(dictionary: CategoryDictionary, value: Any) -> LabelResult:
    label = dictionary.get(value)
    if label is None:
        return Unmapped(value=value, dictionary=dictionary.name)
    return Labeled(value=value, label=label)


def attach_labels(
    table: CountTable,
    dictionary: CategoryDictionary,
    *,
    on_unmapped: UnmappedPolicy = UnmappedPolicy.WARN,
) -> CountTable:
    """
    Devuelve una tabla nueva con `readable` = etiqueta del diccionario, tal cual.
    Los valores sin entrada quedan con `readable=None` (se exporta vacío);
    `on_unmapped` decide si eso se ignora, se avisa o es un error.
    """
    policy = UnmappedPolicy(on_unmapped)
    rows = []
    missing = []
    for row in table:
        res = lookup(dictionary, row.map_value)
        if isinstance(res, Labeled):
            rows.append(CountRow(row.map_name, row.map_value, row.count, res.label))
        else:
            missing.append(row.map_value)
            rows.append(CountRow(row.map_name, row.map_value, row.count, None))
    if missing:
        if policy is UnmappedPolicy.ERROR:
            raise UnmappedCategoryError(dictionary.name, tuple(missing))
        if policy is UnmappedPolicy.WARN:
            logger.warning("%d categoría(s) sin etiqueta en '%s': %s", len(missing), dictionary.name, missing)
    return table.with_rows(rows)


__all__ = ["UnmappedPolicy", "UnmappedCategoryError", "lookup", "attach_labels"]
