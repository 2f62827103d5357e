import logging
import pytest
from terrabio.contracts.core import LOSS_DICTIONARY, GAIN_DICTIONARY, UnmappedPolicy
from terrabio.contracts.stats import CountRow, CountTable, Labeled, Unmapped
from terrabio.adapters.memory_backend import InMemoryBackend
from terrabio.services.labeling_service import UnmappedCategoryError, attach_labels, lookup
from terrabio.services.stats_service import build_request
from tests.factories import covering_aoi, make_change_map, make_raster


def _table(*values):
    return CountTable(rows=tuple(CountRow("remapped", v, 1) for v in values))


def test_lookup_explicit_miss():
    assert lookup(GAIN_DICTIONARY, 1) == Labeled(1, "Gain")
    miss = lookup(GAIN_DICTIONARY, 7)
    assert isinstance(miss, Unmapped) and miss.dictionary == "gain"


def test_labels_are_verbatim():
    out = attach_labels(_table(1, 2, 3, 4), LOSS_DICTIONARY)
    for row in out:
        assert row.readable == LOSS_DICTIONARY.entries[row.map_value]


def test_attach_labels_keeps_counts_and_is_pure():
    src = CountTable(rows=(CountRow("remapped", 0, 5), CountRow("remapped", 1, 7)))
    out = attach_labels(src, GAIN_DICTIONARY)
    assert out.as_dict() == src.as_dict()
    assert all(r.readable is None for r in src)
    assert out.labels() == {0: "NoGain", 1: "Gain"}


def test_unmapped_warn_is_default(caplog):
    with caplog.at_level(logging.WARNING, logger="terrabio.services.labeling_service"):
        out = attach_labels(_table(1, 9), LOSS_DICTIONARY)
    assert out.labels() == {1: "StableForest", 9: None}
    assert "9" in caplog.text


def test_unmapped_ignore_is_silent(caplog):
    with caplog.at_level(logging.WARNING):
        out = attach_labels(_table(9), LOSS_DICTIONARY, on_unmapped=UnmappedPolicy.IGNORE)
    assert out.labels() == {9: None}
    assert caplog.records == []


def test_unmapped_error():
    with pytest.raises(UnmappedCategoryError) as ei:
        attach_labels(_table(1, 9, 10), LOSS_DICTIONARY, on_unmapped="error")
    assert ei.value.values == (9, 10)
    assert isinstance(ei.value, KeyError)


@pytest.mark.parametrize("code", [2.5, float("inf"), float("-inf"), float("nan"), "x", None])
def test_non_integer_codes_are_unmapped(code):
    assert isinstance(lookup(LOSS_DICTIONARY, code), Unmapped)


def test_whole_floats_and_strings_still_match():
    assert lookup(LOSS_DICTIONARY, 2.0) == Labeled(2.0, "Degradation")
    assert lookup(LOSS_DICTIONARY, "3") == Labeled("3", "Deforestation")


def test_float_band_counts_keep_fractional_codes_unlabelled():
    cm = make_change_map(remapped=make_raster([[1.0, 2.5, 2.5]], dtype="float32"))
    table = InMemoryBackend().reduce(build_request(cm, "remapped", covering_aoi(cm)))
    out = attach_labels(table, LOSS_DICTIONARY, on_unmapped=UnmappedPolicy.IGNORE)
    assert out.labels() == {1: "StableForest", 2.5: None}


def test_infinite_code_does_not_crash():
    out = attach_labels(_table(1, float("inf")), LOSS_DICTIONARY, on_unmapped=UnmappedPolicy.IGNORE)
    assert out.labels() == {1: "StableForest", float("inf"): None}
