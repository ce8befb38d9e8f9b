"""Tests for label mapping and rerank candidate features."""

import math

import pytest

from gridlocate import TEST, ConfigError, GridDoc, UnsupportedModelError
from gridlocate._features import (
    SCORE_FEATURE,
    CellLabelMapper,
    DocFeatVecFactory,
    KLDivCandidateFeatVecFactory,
    TrivialCandidateFeatVecFactory,
    WordMatchingCandidateFeatVecFactory,
)


def test_label_mapper(grid):
    cells = grid.iter_nonempty_cells()
    mapper = CellLabelMapper(cells + cells[:1])
    assert mapper.number_of_labels == 3
    assert mapper.lookup_cell(cells[2]) == 2
    assert mapper.index_to_cell(1) is cells[1]
    assert mapper.lookup_cell(object()) is None


def test_doc_features_are_unsmoothed_probabilities(grid, tokyo_doc):
    factory = DocFeatVecFactory(CellLabelMapper(grid.iter_nonempty_cells()))
    features = factory.get_features(tokyo_doc)
    assert features == pytest.approx({"tokyo": 2 / 3, "sushi": 1 / 3})
    assert factory(tokyo_doc, grid.iter_nonempty_cells()[0]) is features


def test_trivial_features_skip_infinite_score(paris_doc, cell, grid):
    factory = TrivialCandidateFeatVecFactory()
    paris = cell(grid, 0.5, 0.5)
    assert factory(paris_doc, paris, 2.5) == {SCORE_FEATURE: 2.5}
    assert factory(paris_doc, paris, -math.inf) == {}


@pytest.mark.parametrize("value, expected", [
    ("binary", 1.0),
    ("count", 3.0),
    ("count-product", 54.0),
])
def test_word_matching_values(grid, paris_doc, cell, value, expected):
    factory = WordMatchingCandidateFeatVecFactory(value)
    fv = factory(paris_doc, cell(grid, 0.5, 0.5), 0.0)
    assert fv == {"paris": expected, SCORE_FEATURE: 0.0}


def test_word_matching_ignores_unshared_words(grid, paris_doc, cell):
    factory = WordMatchingCandidateFeatVecFactory("probability")
    assert factory(paris_doc, cell(grid, 0.5, 3.0), 1.0) == {SCORE_FEATURE: 1.0}


def test_kl_features_sum_to_partial_kl(grid, tokyo_doc, cell):
    tokyo = cell(grid, 0.5, 3.0)
    fv = KLDivCandidateFeatVecFactory()(tokyo_doc, tokyo, 0.0)
    del fv[SCORE_FEATURE]
    assert sum(fv.values()) == pytest.approx(tokyo_doc.lm.kl_divergence(tokyo.lm))


def test_bad_word_matching_value():
    with pytest.raises(ConfigError):
        WordMatchingCandidateFeatVecFactory("tf-idf")


def test_word_features_need_unigram_model(grid, cell):
    doc = GridDoc("odd", TEST, None, lm=object())
    with pytest.raises(UnsupportedModelError):
        WordMatchingCandidateFeatVecFactory()(doc, cell(grid, 0.5, 0.5), 0.0)
