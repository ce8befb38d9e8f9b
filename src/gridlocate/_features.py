"""Feature vectors for classifier rankers and rerankers."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterable

from ._errors import ConfigError, UnsupportedModelError
from ._langmodel import UnigramLangModel

if TYPE_CHECKING:
    from ._cell import GridCell
    from ._document import GridDoc

FeatureVector = dict[str, float]

SCORE_FEATURE = "-SCORE-"

WORD_MATCHING_VALUES = (
    "binary", "count", "count-product", "prob-product", "probability", "kl",
)


class CellLabelMapper:
    """Bijection between candidate cells and 0-based classifier labels."""

    __slots__ = ("_cells", "_labels")

    def __init__(self, cells: Iterable[GridCell] = ()) -> None:
        self._cells: list[GridCell] = []
        self._labels: dict[int, int] = {}  # id(cell) -> label
        for cell in cells:
            self.add_cell(cell)

    def add_cell(self, cell: GridCell) -> int:
        label = self._labels.get(id(cell))
        if label is None:
            label = len(self._cells)
            self._cells.append(cell)
            self._labels[id(cell)] = label
        return label

    @property
    def number_of_labels(self) -> int:
        return len(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def lookup_cell(self, cell: GridCell) -> int | None:
        return self._labels.get(id(cell))

    def index_to_cell(self, label: int) -> GridCell:
        return self._cells[label]

    def cells(self) -> list[GridCell]:
        return list(self._cells)


class DocFeatVecFactory:
    """Document-level features shared by every label of a multi-label
    classifier: the document's unsmoothed word probabilities."""

    __slots__ = ("mapper", "_last_doc", "_last_features")

    def __init__(self, mapper: CellLabelMapper) -> None:
        self.mapper = mapper
        self._last_doc: GridDoc | None = None
        self._last_features: FeatureVector = {}

    def get_features(self, doc: GridDoc) -> FeatureVector:
        if doc is self._last_doc:
            return self._last_features
        lm = doc.lm
        features = {word: lm.unsmoothed_prob(word) for word, _ in lm.iter_items()}
        self._last_doc = doc
        self._last_features = features
        return features

    def lookup_cell(self, cell: GridCell) -> int | None:
        return self.mapper.lookup_cell(cell)

    def index_to_cell(self, label: int) -> GridCell:
        return self.mapper.index_to_cell(label)

    def __call__(self, doc: GridDoc, cell: GridCell) -> FeatureVector:
        return self.get_features(doc)


# -- Candidate features for reranking --


class CandidateFeatVecFactory:
    """Builds the feature vector of one (document, candidate cell) pair.

    Every vector carries the initial ranker's score under
    ``SCORE_FEATURE``.
    """

    def __call__(self, doc: GridDoc, cell: GridCell, score: float) -> FeatureVector:
        raise NotImplementedError

    @staticmethod
    def make_feature_vector(
        feats: Iterable[tuple[str, float]], score: float
    ) -> FeatureVector:
        fv = dict(feats)
        # Cells forced into a ranking at -inf carry no score feature
        if math.isfinite(score):
            fv[SCORE_FEATURE] = score
        return fv


class TrivialCandidateFeatVecFactory(CandidateFeatVecFactory):
    def __call__(self, doc: GridDoc, cell: GridCell, score: float) -> FeatureVector:
        return self.make_feature_vector((), score)


class WordByWordCandidateFeatVecFactory(CandidateFeatVecFactory):
    """One feature per document word that the cell also has."""

    def get_word_feature(
        self,
        word: str,
        count: float,
        doc_lm: UnigramLangModel,
        cell_lm: UnigramLangModel,
    ) -> float | None:
        raise NotImplementedError

    def __call__(self, doc: GridDoc, cell: GridCell, score: float) -> FeatureVector:
        doc_lm = doc.lm
        cell_lm = cell.lm
        if not isinstance(doc_lm, UnigramLangModel):
            raise UnsupportedModelError(
                f"Word-by-word rerank features need a unigram model, "
                f"{doc} has {type(doc_lm).__name__}"
            )
        if not isinstance(cell_lm, UnigramLangModel):
            raise UnsupportedModelError(
                f"Word-by-word rerank features need a unigram model, "
                f"{cell.shortstr()} has {type(cell_lm).__name__}"
            )
        feats = []
        for word, count in doc_lm.iter_items():
            value = self.get_word_feature(word, count, doc_lm, cell_lm)
            if value is not None:
                feats.append((word, value))
        return self.make_feature_vector(feats, score)


class KLDivCandidateFeatVecFactory(WordByWordCandidateFeatVecFactory):
    """Each word's contribution to KL(doc || cell)."""

    def get_word_feature(self, word, count, doc_lm, cell_lm):
        p = doc_lm.lookup_word(word)
        q = cell_lm.lookup_word(word)
        if q == 0.0 or p == 0.0:
            return None
        return p * (math.log(p) - math.log(q))


class WordMatchingCandidateFeatVecFactory(WordByWordCandidateFeatVecFactory):
    """Features for words the document shares with the cell.

    ``value`` picks the feature value: ``binary`` (1), ``count`` (document
    count), ``count-product`` (document count times cell count),
    ``prob-product``, ``probability`` (document probability) or ``kl``.
    """

    def __init__(self, value: str = "binary") -> None:
        if value not in WORD_MATCHING_VALUES:
            raise ConfigError(
                f"Word-matching value must be one of {WORD_MATCHING_VALUES}, "
                f"got {value!r}"
            )
        self.value = value

    def get_word_feature(self, word, count, doc_lm, cell_lm):
        qcount = cell_lm.get_item(word)
        if qcount == 0.0:
            return None
        value = self.value
        if value == "binary":
            return 1.0
        if value == "count":
            return count
        if value == "count-product":
            return count * qcount
        if value == "prob-product":
            return doc_lm.lookup_word(word) * cell_lm.lookup_word(word)
        p = doc_lm.lookup_word(word)
        if value == "probability":
            return p
        q = cell_lm.lookup_word(word)
        return p * math.log(p / q)
