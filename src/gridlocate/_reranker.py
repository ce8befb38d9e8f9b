"""Pointwise reranking of an initial ranker's top candidates."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterable

from tclogger import logger

from ._classifier import RankingPerceptronTrainer
from ._errors import ConfigError, NumericError
from ._rankers import GridRanker, RankerKind, by_score

if TYPE_CHECKING:
    from ._classifier import LinearClassifier
    from ._document import GridDoc
    from ._features import CandidateFeatVecFactory, FeatureVector


def reranker(
    initial_ranker: GridRanker,
    classifier: LinearClassifier,
    featvec_factory: CandidateFeatVecFactory,
    top_n: int,
    name: str = "reranker",
) -> GridRanker:
    """Re-score the initial ranker's top ``top_n`` cells with ``classifier``.

    The reranked cells come first, sorted by classifier score; the rest
    follow in their initial order with scores below the lowest reranked
    one, so the whole list stays sorted.
    """
    grid = initial_ranker.grid

    def rank(doc, correct, include_correct):
        initial = initial_ranker.return_ranked_cells(doc, correct, include_correct)
        rescored = []
        for cell, score in initial[:top_n]:
            new_score = classifier.score(featvec_factory(doc, cell, score))
            if math.isnan(new_score):
                raise NumericError(
                    f"Saw NaN for rerank score of cell {cell.shortstr()}, doc {doc}"
                )
            rescored.append((cell, new_score))
        rescored.sort(key=by_score, reverse=True)
        rest = initial[top_n:]
        if rest:
            lowest = rescored[-1][1] if rescored else 0.0
            rescored.extend(
                (cell, lowest - i - 1.0) for i, (cell, _) in enumerate(rest)
            )
        return rescored

    return GridRanker(
        RankerKind.RERANKER, name, grid, rank, init_fn=initial_ranker.initialize,
    )


class GridRerankerTrainer:
    """Trains a reranker for ``initial_ranker`` from training documents.

    For every training document with a coordinate, the initial ranker's
    top ``top_n`` cells become one training group; the correct cell is
    forced into the group (replacing the last candidate) if it did not
    make the cut.
    """

    def __init__(
        self,
        initial_ranker: GridRanker,
        featvec_factory: CandidateFeatVecFactory,
        trainer: RankingPerceptronTrainer | None = None,
        top_n: int | None = None,
    ) -> None:
        params = initial_ranker.grid.params
        self.initial_ranker = initial_ranker
        self.featvec_factory = featvec_factory
        self.trainer = trainer or RankingPerceptronTrainer.from_params(params)
        self.top_n = top_n if top_n is not None else params.rerank_top_n
        if self.top_n < 1:
            raise ConfigError(f"top_n must be >= 1, got {self.top_n}")

    def make_group(self, doc: GridDoc) -> tuple[list[FeatureVector], int] | None:
        grid = self.initial_ranker.grid
        correct = grid.find_best_cell_for_coord(doc.coord, create_non_recorded=True)
        if correct is None:
            return None
        ranked = self.initial_ranker.return_ranked_cells(doc, correct, include_correct=True)
        top = ranked[:self.top_n]
        correct_index = next(
            (i for i, (cell, _) in enumerate(top) if cell is correct), None
        )
        if correct_index is None:
            score = next(score for cell, score in ranked if cell is correct)
            top[-1] = (correct, score)
            correct_index = len(top) - 1
        fvs = [self.featvec_factory(doc, cell, score) for cell, score in top]
        return fvs, correct_index

    def __call__(self, training_docs: Iterable[GridDoc]) -> GridRanker:
        groups = []
        for doc in training_docs:
            if doc.coord is None:
                continue
            group = self.make_group(doc)
            if group is not None:
                groups.append(group)
        num_items = sum(len(fvs) for fvs, _ in groups)
        num_feats = sum(len(fv) for fvs, _ in groups for fv in fvs)
        logger.note("> Training rerank classifier ...")
        logger.mesg(f"  * Number of training groups: {len(groups)}")
        logger.mesg(f"  * Number of candidate instances: {num_items}")
        if num_items:
            logger.mesg(f"  * Avg number of features per instance: {num_feats / num_items:.2f}")
        classifier = self.trainer(groups)
        return reranker(
            self.initial_ranker, classifier, self.featvec_factory, self.top_n,
            name=f"reranked {self.initial_ranker.name}",
        )
