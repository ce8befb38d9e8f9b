"""Grid rankers: score every candidate cell of a grid against a document.

Every ranker is a ``GridRanker`` tagged with a ``RankerKind`` and built
from plain functions by one of the constructors below. Pointwise kinds
share one driver, ``rank_pointwise``, which handles serial or threaded
scoring, NaN checks, sorting and the ``ranking`` debug trace.
"""

from __future__ import annotations

import enum
import math
import random
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable, Iterable, Mapping, Sequence

from tclogger import logger

from ._classifier import MultiLabelPerceptronTrainer, raw_scores_to_logprobs
from ._errors import ConfigError, ExternalScorerError, GridStateError, NumericError
from ._features import CellLabelMapper, DocFeatVecFactory

if TYPE_CHECKING:
    from ._cell import GridCell
    from ._classifier import BatchScorer, MultiLabelLinearClassifier
    from ._document import GridDoc
    from ._grid import Grid

Ranking = list[tuple["GridCell", float]]
ScoreFn = Callable[["GridDoc", "GridCell"], float]
RankFn = Callable[["GridDoc", "GridCell | None", bool], Ranking]
CandidatesFn = Callable[["GridCell | None", bool], list["GridCell"]]

COSINE_TOLERANCE = 1.002


class RankerKind(enum.Enum):
    RANDOM = "random"
    MOST_POPULAR = "most-popular"
    KL_DIVERGENCE = "kl-divergence"
    COSINE_SIMILARITY = "cosine-similarity"
    SUM_FREQUENCY = "sum-frequency"
    NAIVE_BAYES = "naive-bayes"
    CLASSIFIER = "classifier"
    BATCH_CLASSIFIER = "batch-classifier"
    HIERARCHICAL_CLASSIFIER = "hierarchical-classifier"
    INTERPOLATING = "interpolating"
    AVERAGE_CELL_PROBABILITY = "average-cell-probability"
    RERANKER = "reranker"


class GridRanker:
    """Ranks the cells of ``grid`` for a document, best first.

    ``rank_fn(doc, correct, include_correct)`` produces the ranking;
    ``score_fn`` and ``direct_fn`` are present for kinds that can score a
    single cell or score a document directly against every label.
    """

    __slots__ = (
        "kind", "name", "grid", "_rank_fn", "_score_fn", "_init_fn",
        "_direct_fn",
    )

    def __init__(
        self,
        kind: RankerKind,
        name: str,
        grid: Grid,
        rank_fn: RankFn,
        score_fn: ScoreFn | None = None,
        init_fn: Callable[[Sequence[GridDoc]], None] | None = None,
        direct_fn: Callable[[GridDoc], Ranking] | None = None,
    ) -> None:
        self.kind = kind
        self.name = name
        self.grid = grid
        self._rank_fn = rank_fn
        self._score_fn = score_fn
        self._init_fn = init_fn
        self._direct_fn = direct_fn

    def __repr__(self) -> str:
        return f"GridRanker({self.kind.value}, {self.name!r})"

    def initialize(self, docs: Iterable[GridDoc]) -> None:
        """One pass over the test documents before any of them is ranked."""
        if self._init_fn is not None:
            self._init_fn(list(docs))

    def return_ranked_cells(
        self,
        doc: GridDoc,
        correct: GridCell | None = None,
        include_correct: bool = False,
    ) -> Ranking:
        """(cell, score) pairs sorted by descending score.

        With ``include_correct``, ``correct`` appears exactly once however
        poorly it scores.
        """
        return self._rank_fn(doc, correct, include_correct)

    evaluate = return_ranked_cells

    @property
    def can_score_cell(self) -> bool:
        return self._score_fn is not None

    def score_cell(self, doc: GridDoc, cell: GridCell) -> float:
        if self._score_fn is None:
            raise ConfigError(f"{self!r} can't score individual cells")
        return self._score_fn(doc, cell)

    def score_doc_directly(self, doc: GridDoc) -> Ranking:
        if self._direct_fn is None:
            raise ConfigError(f"{self!r} can't score documents directly")
        return self._direct_fn(doc)


# -- Shared driver --


def by_score(item: tuple[GridCell, float]) -> float:
    return item[1]


def rank_pointwise(
    grid: Grid,
    doc: GridDoc,
    cells: Iterable[GridCell],
    score_fn: ScoreFn,
) -> Ranking:
    """Score each cell independently and sort best first.

    Scoring is threaded when ``params.parallel`` is set, except while the
    ``ranking`` trace is on, which needs cells in iteration order.
    """
    params = grid.params
    trace = params.debugging("ranking", doc.title)

    def score_one(cell: GridCell) -> tuple[GridCell, float]:
        score = score_fn(doc, cell)
        if math.isnan(score):
            raise NumericError(f"Saw NaN for score of cell {cell.shortstr()}, doc {doc}")
        return cell, score

    if params.parallel and not trace:
        with ThreadPoolExecutor(max_workers=params.max_workers) as pool:
            scored = list(pool.map(score_one, cells))
    else:
        scored = []
        for cell in cells:
            if trace:
                logger.hint(
                    f"Nonempty cell at indices {cell.describe_indices()} = "
                    f"location {cell.describe_location()}, "
                    f"num_documents = {cell.num_docs}"
                )
            scored.append(score_one(cell))
    scored.sort(key=by_score, reverse=True)
    return scored


def _include_correct(
    ranking: Ranking, correct: GridCell | None, include_correct: bool
) -> Ranking:
    if include_correct and correct is not None:
        if not any(cell is correct for cell, _ in ranking):
            ranking.append((correct, -math.inf))
    return ranking


def _pointwise_ranker(
    kind: RankerKind,
    name: str,
    grid: Grid,
    score_fn: ScoreFn,
    candidates_fn: CandidatesFn | None = None,
    init_fn: Callable[[Sequence[GridDoc]], None] | None = None,
) -> GridRanker:
    candidates = candidates_fn or grid.iter_nonempty_cells_including

    def rank(doc, correct, include_correct):
        return rank_pointwise(grid, doc, candidates(correct, include_correct), score_fn)

    return GridRanker(kind, name, grid, rank, score_fn=score_fn, init_fn=init_fn)


# -- Baselines --


def random_ranker(grid: Grid, seed: int | None = None, name: str = "random") -> GridRanker:
    """All cells score 0, in shuffled order. Reproducible given a seed
    (``params.random_seed`` if ``seed`` is None)."""
    if seed is None:
        seed = grid.params.random_seed
    rng = random.Random(seed)

    def rank(doc, correct, include_correct):
        cells = grid.iter_nonempty_cells_including(correct, include_correct)
        rng.shuffle(cells)
        return [(cell, 0.0) for cell in cells]

    return GridRanker(RankerKind.RANDOM, name, grid, rank, score_fn=lambda doc, cell: 0.0)


def most_popular_ranker(
    grid: Grid, salience: bool = False, name: str = "most-popular"
) -> GridRanker:
    """Cells by document count, or by summed salience. Ignores the document."""

    def score(doc, cell):
        return cell.salience if salience else float(cell.num_docs)

    return _pointwise_ranker(RankerKind.MOST_POPULAR, name, grid, score)


# -- Language-model comparisons --


def _log_kldiv_contribs(
    grid: Grid, doc: GridDoc, ranking: Ranking, partial: bool
) -> None:
    params = grid.params
    logger.hint("KL-divergence debugging info:")
    for rank, (cell, _) in enumerate(ranking[:params.kldiv_num_contrib_cells], start=1):
        _, contribs = doc.lm.kl_divergence_debug(cell.lm, partial=partial)
        logger.hint(f"  At rank #{rank}, cell {cell.shortstr()}:")
        logger.hint(f"    {'Word':>30}  KL-div contribution")
        logger.hint(f"    {'-' * 50}")
        top = sorted(contribs.items(), key=lambda kv: abs(kv[1]), reverse=True)
        for word, value in top[:params.kldiv_num_contrib_words]:
            logger.hint(f"    {word:>30}  {value:.6g}")


def kl_divergence_ranker(
    grid: Grid,
    partial: bool = True,
    symmetric: bool = False,
    name: str | None = None,
) -> GridRanker:
    """Score is -KL(doc || cell); the symmetric variant averages both
    directions. ``partial`` sums only over the document's words."""
    if name is None:
        name = f"{'symmetric-' if symmetric else ''}{'partial' if partial else 'full'}-kl-divergence"

    def score_with(doc, cell, cache=None):
        kldiv = doc.lm.kl_divergence(cell.lm, partial=partial, cache=cache)
        if symmetric:
            kldiv2 = cell.lm.kl_divergence(doc.lm, partial=partial)
            kldiv = (kldiv + kldiv2) / 2.0
        # Negate so that higher scores are better
        return -kldiv

    def score(doc, cell):
        return score_with(doc, cell)

    def rank(doc, correct, include_correct):
        cache = doc.lm.get_kl_divergence_cache()
        ranking = rank_pointwise(
            grid, doc,
            grid.iter_nonempty_cells_including(correct, include_correct),
            lambda d, c: score_with(d, c, cache),
        )
        if grid.params.debugging("kldiv", doc.title):
            _log_kldiv_contribs(grid, doc, ranking, partial)
        return ranking

    return GridRanker(RankerKind.KL_DIVERGENCE, name, grid, rank, score_fn=score)


def cosine_similarity_ranker(
    grid: Grid,
    smoothed: bool = False,
    partial: bool = True,
    name: str | None = None,
) -> GridRanker:
    if name is None:
        name = f"{'smoothed-' if smoothed else ''}{'partial' if partial else 'full'}-cosine-similarity"

    def score(doc, cell):
        cossim = doc.lm.cosine_similarity(cell.lm, partial=partial, smoothed=smoothed)
        if not (0.0 <= cossim <= COSINE_TOLERANCE):
            raise NumericError(
                f"Cosine similarity {cossim} out of range for cell "
                f"{cell.shortstr()}, doc {doc}"
            )
        return cossim

    return _pointwise_ranker(RankerKind.COSINE_SIMILARITY, name, grid, score)


def sum_frequency_ranker(grid: Grid, name: str = "sum-frequency") -> GridRanker:
    """Sum over the document's words of the cell's unsmoothed probability."""

    def score(doc, cell):
        return doc.lm.sum_frequency(cell.lm)

    return _pointwise_ranker(RankerKind.SUM_FREQUENCY, name, grid, score)


# -- Naive Bayes --


class NaiveBayesFeature:
    """A log-likelihood term of the Naive Bayes score."""

    def initialize(self, docs: Sequence[GridDoc]) -> None:
        pass

    def get_logprob(self, doc: GridDoc, cell: GridCell) -> float:
        raise NotImplementedError


class NaiveBayesTermsFeature(NaiveBayesFeature):
    """Log-probability of the document's words under the cell's model."""

    def get_logprob(self, doc, cell):
        return cell.lm.model_logprob(doc.lm)


class NaiveBayesRoughRankerFeature(NaiveBayesFeature):
    """Score of the cell's central point under a separate, usually coarser,
    ranker.

    The rough score is used as is: Naive Bayes scores are already
    log-probabilities, and classifier scores differ from them only by a
    per-document normalizer that does not change the ranking.
    """

    def __init__(self, rough_ranker: GridRanker) -> None:
        if not rough_ranker.can_score_cell:
            raise ConfigError(f"Rough ranker {rough_ranker!r} can't score individual cells")
        self.rough_ranker = rough_ranker

    def initialize(self, docs):
        self.rough_ranker.initialize(docs)

    def get_logprob(self, doc, cell):
        rough_cell = self.rough_ranker.grid.find_best_cell_for_coord(
            cell.get_central_point(), create_non_recorded=True
        )
        return self.rough_ranker.score_cell(doc, rough_cell)


def naive_bayes_ranker(
    grid: Grid,
    features: Sequence[NaiveBayesFeature] | None = None,
    name: str = "naive-bayes",
) -> GridRanker:
    """``(1 - bw) * sum(feature logprobs) + bw * log(prior / total prior)``
    where ``bw`` is ``params.naive_bayes_prior_weight``."""
    if features is None:
        features = [NaiveBayesTermsFeature()]
    features = list(features)
    prior_weight = grid.params.naive_bayes_prior_weight
    word_weight = 1.0 - prior_weight

    def score(doc, cell):
        logprob = 0.0
        if word_weight > 0.0:
            features_logprob = sum(f.get_logprob(doc, cell) for f in features)
            if math.isnan(features_logprob):
                raise NumericError(
                    f"features_logprob: Saw NaN for score of cell "
                    f"{cell.shortstr()}, doc {doc}"
                )
            logprob += word_weight * features_logprob
        if prior_weight > 0.0:
            total = grid.total_prior_weighting
            if not total > 0.0:
                raise NumericError(
                    f"prior_logprob: total prior weighting {total} for cell "
                    f"{cell.shortstr()}, doc {doc}"
                )
            ratio = cell.prior_weighting / total
            prior_logprob = math.log(ratio) if ratio > 0.0 else -math.inf
            logprob += prior_weight * prior_logprob
        return logprob

    def init(docs):
        for f in features:
            f.initialize(docs)

    return _pointwise_ranker(RankerKind.NAIVE_BAYES, name, grid, score, init_fn=init)


# -- Classifiers --


def _label_candidates(featvec_factory: DocFeatVecFactory) -> CandidatesFn:
    """Cells the classifier knows, with the correct cell prepended if
    requested and unknown."""

    def candidates(correct, include_correct):
        cells = featvec_factory.mapper.cells()
        if include_correct and correct is not None:
            if not any(cell is correct for cell in cells):
                cells.insert(0, correct)
        return cells

    return candidates


def classifier_ranker(
    grid: Grid,
    classifier: MultiLabelLinearClassifier,
    featvec_factory: DocFeatVecFactory,
    name: str = "classifier",
) -> GridRanker:
    """Linear classifier with one label per candidate cell. Cells unknown
    to the classifier score negative infinity."""
    candidates = _label_candidates(featvec_factory)

    def score(doc, cell):
        label = featvec_factory.lookup_cell(cell)
        if label is None:
            return -math.inf
        return classifier.score_label(featvec_factory(doc, cell), label)

    def rank(doc, correct, include_correct):
        return rank_pointwise(grid, doc, candidates(correct, include_correct), score)

    def direct(doc):
        return rank(doc, None, False)

    return GridRanker(
        RankerKind.CLASSIFIER, name, grid, rank, score_fn=score, direct_fn=direct,
    )


def batch_classifier_ranker(
    grid: Grid,
    scorer: BatchScorer,
    featvec_factory: DocFeatVecFactory,
    cost_sensitive: bool = False,
    normalize: bool | None = None,
    name: str = "batch-classifier",
) -> GridRanker:
    """Classifier scored in one batch over the whole test set.

    ``initialize`` sends every test document to ``scorer`` once and caches
    the per-label log-probabilities by document title; ranking is then a
    cache lookup.
    """
    if normalize is None:
        normalize = grid.params.normalize_batch_scores
    num_labels = featvec_factory.mapper.number_of_labels
    if scorer.num_labels != num_labels:
        raise ConfigError(
            f"Scorer has {scorer.num_labels} labels but {num_labels} "
            f"candidate cells are mapped"
        )
    candidates = _label_candidates(featvec_factory)
    doc_scores: dict[str, list[float]] | None = None

    def score_docs(docs: Sequence[GridDoc]) -> list[list[float]]:
        fvs = [featvec_factory.get_features(doc) for doc in docs]
        rows = scorer(fvs, cost_sensitive)
        if len(rows) != len(docs):
            raise ExternalScorerError(f"Got {len(rows)} score rows for {len(docs)} documents")
        result = []
        for doc, row in zip(docs, rows):
            if len(row) != num_labels:
                raise ExternalScorerError(
                    f"Got {len(row)} label scores for {doc}, expected {num_labels}"
                )
            result.append(raw_scores_to_logprobs(row, cost_sensitive, normalize))
        return result

    def init(docs):
        nonlocal doc_scores
        logger.note(f"> Scoring {len(docs)} test documents with {name} ...")
        doc_scores = {doc.title: row for doc, row in zip(docs, score_docs(docs))}

    def score(doc, cell):
        if doc_scores is None:
            raise GridStateError(f"{name} ranker used before initialize()")
        scores = doc_scores.get(doc.title)
        if scores is None:
            raise GridStateError(f"{doc} was not scored by initialize()")
        # The classifier may know fewer cells than the grid has
        label = featvec_factory.lookup_cell(cell)
        if label is None:
            return -math.inf
        return scores[label]

    def rank(doc, correct, include_correct):
        return rank_pointwise(grid, doc, candidates(correct, include_correct), score)

    def direct(doc):
        scores = score_docs([doc])[0]
        return list(zip(featvec_factory.mapper.cells(), scores))

    return GridRanker(
        RankerKind.BATCH_CLASSIFIER, name, grid, rank,
        score_fn=score, init_fn=init, direct_fn=direct,
    )


def create_classifier_ranker(
    grid: Grid,
    candidates: Iterable[GridCell],
    training_docs: Iterable[GridDoc],
    trainer: MultiLabelPerceptronTrainer | None = None,
    name: str = "classifier",
) -> GridRanker:
    """Train a classifier over ``candidates`` and wrap it in a ranker.

    Only training documents whose own cell is a candidate are used.
    """
    mapper = CellLabelMapper(candidates)
    if mapper.number_of_labels == 0:
        raise ConfigError("Classifier ranker needs at least one candidate cell")
    featvec_factory = DocFeatVecFactory(mapper)
    if trainer is None:
        trainer = MultiLabelPerceptronTrainer.from_params(grid.params)
    data = []
    for doc in training_docs:
        if doc.coord is None:
            continue
        cell = grid.find_best_cell_for_coord(doc.coord, create_non_recorded=False)
        label = mapper.lookup_cell(cell) if cell is not None else None
        if label is not None:
            data.append((dict(featvec_factory.get_features(doc)), label))
    logger.note(
        f"> Training {name} over {mapper.number_of_labels} cells "
        f"on {len(data)} documents ..."
    )
    classifier = trainer(data, mapper.number_of_labels)
    return classifier_ranker(grid, classifier, featvec_factory, name=name)


# -- Hierarchical --


def hierarchical_classifier_ranker(
    grids: Sequence[Grid],
    coarse_ranker: GridRanker,
    finer_rankers: Sequence[Mapping[GridCell, GridRanker]],
    beam_size: int | None = None,
    name: str = "hierarchical-classifier",
) -> GridRanker:
    """Greedy coarse-to-fine beam search over a stack of grids.

    All cells of the coarsest grid are scored by ``coarse_ranker`` and the
    best ``beam_size`` kept. At each finer level every surviving cell is
    replaced by the single best of its children according to that cell's
    ranker in ``finer_rankers``, adding the child's score to its own
    (log-scores of a chain of conditional probabilities). Only one child
    survives per parent; this is an approximation of full search.
    """
    grids = list(grids)
    finer_rankers = list(finer_rankers)
    if not grids:
        raise ConfigError("Hierarchical ranker needs at least one grid")
    if len(finer_rankers) != len(grids) - 1:
        raise ConfigError(
            f"Need {len(grids) - 1} levels of finer rankers, got {len(finer_rankers)}"
        )
    if not coarse_ranker.can_score_cell:
        raise ConfigError(f"Coarse ranker {coarse_ranker!r} can't score individual cells")
    coarsest = grids[0]
    finest = grids[-1]
    params = finest.params
    if beam_size is None:
        beam_size = params.beam_size

    def log_ranking(grid, docid, ranking, correct):
        logger.hint(f"Ranking for {docid}:")
        for line in grid.format_ranking(ranking, correct):
            logger.hint(f"  {line}")

    def rank(doc, correct, include_correct):
        do_gridrank = params.debugging("hier-gridrank", doc.title)
        prev = rank_pointwise(
            coarsest, doc, coarsest.iter_nonempty_cells(), coarse_ranker.score_cell,
        )
        if do_gridrank:
            log_ranking(coarsest, f"{doc.title} (level 1)", prev, correct)
        for level, (finer, rankers) in enumerate(zip(grids[1:], finer_rankers), start=2):
            new_scores = []
            for index, (old_cell, old_score) in enumerate(prev[:beam_size], start=1):
                ranker = rankers.get(old_cell)
                if ranker is None:
                    logger.warn(
                        f"× No classifier for {old_cell.shortstr()} at level {level}"
                    )
                    continue
                ranked = sorted(ranker.score_doc_directly(doc), key=by_score, reverse=True)
                if not ranked:
                    continue
                if do_gridrank:
                    log_ranking(
                        finer,
                        f"{doc.title} (level {level}, index {index}, "
                        f"cell {old_cell.describe_location()})",
                        ranked, correct,
                    )
                top_cell, top_score = ranked[0]
                if params.debugging("hier-classifier", doc.title):
                    logger.hint(
                        f"Old cell: {old_cell.get_central_point()} (old score {old_score}); "
                        f"substituting top cell {top_cell.get_central_point()}, "
                        f"top score {top_score}, total score {old_score + top_score}"
                    )
                new_scores.append((top_cell, old_score + top_score))
            new_scores.sort(key=by_score, reverse=True)
            prev = new_scores
        return _include_correct(prev, correct, include_correct)

    def init(docs):
        coarse_ranker.initialize(docs)

    return GridRanker(
        RankerKind.HIERARCHICAL_CLASSIFIER, name, finest, rank, init_fn=init,
    )


def create_hierarchical_classifier_ranker(
    grids: Sequence[Grid],
    training_docs: Sequence[GridDoc],
    beam_size: int | None = None,
    name: str = "hierarchical-classifier",
) -> GridRanker:
    """Train a coarse classifier plus one classifier per non-empty cell of
    every level but the finest, over that cell's subdivided cells."""
    grids = list(grids)
    training_docs = list(training_docs)
    coarse = create_classifier_ranker(
        grids[0], grids[0].iter_nonempty_cells(), training_docs, name=f"{name} (level 1)",
    )
    finer_rankers = []
    for level, (coarser, finer) in enumerate(zip(grids, grids[1:]), start=2):
        rankers = {}
        for cell in coarser.iter_nonempty_cells():
            children = finer.get_subdivided_cells(cell)
            if children:
                rankers[cell] = create_classifier_ranker(
                    finer, children, training_docs,
                    name=f"{name} (level {level}, {cell.describe_location()})",
                )
        finer_rankers.append(rankers)
    return hierarchical_classifier_ranker(grids, coarse, finer_rankers, beam_size, name=name)


# -- Interpolation --


def interpolating_ranker(
    fg: GridRanker,
    bg: GridRanker,
    interp_factor: float | None = None,
    name: str = "interpolating",
) -> GridRanker:
    """Blend a foreground ranker into a background one.

    Each background cell's centroid is looked up in the foreground grid;
    if a scored foreground cell contains it the score becomes
    ``fg * (1 - f) + bg * f``, otherwise the background score is kept.
    The ranking is over the background grid. Matching by centroid assumes
    a regular foreground grid.
    """
    if interp_factor is None:
        interp_factor = bg.grid.params.interpolate_factor
    if not (0.0 <= interp_factor <= 1.0):
        raise ConfigError(f"interp_factor must be in [0.0, 1.0], got {interp_factor}")

    def mix(scorefg, scorebg):
        if interp_factor == 0.0:
            return scorefg
        if interp_factor == 1.0:
            return scorebg
        return scorefg * (1.0 - interp_factor) + scorebg * interp_factor

    def rank(doc, correct, include_correct):
        cells_scores_fg = fg.return_ranked_cells(doc)
        cells_scores_bg = bg.return_ranked_cells(doc, correct, include_correct)
        if not cells_scores_bg:
            return cells_scores_fg
        if not cells_scores_fg:
            return cells_scores_bg
        scores_fg = dict(cells_scores_fg)
        result = []
        for cellbg, scorebg in cells_scores_bg:
            cellfg = fg.grid.find_best_cell_for_coord(
                cellbg.get_centroid(), create_non_recorded=False
            )
            if cellfg is None or cellfg not in scores_fg:
                result.append((cellbg, scorebg))
            else:
                result.append((cellbg, mix(scores_fg[cellfg], scorebg)))
        result.sort(key=by_score, reverse=True)
        return result

    def init(docs):
        fg.initialize(docs)
        bg.initialize(docs)

    return GridRanker(RankerKind.INTERPOLATING, name, bg.grid, rank, init_fn=init)


# -- Average cell probability --


def average_cell_probability_ranker(
    grid: Grid,
    kernel_bandwidth: float | None = None,
    name: str = "average-cell-probability",
) -> GridRanker:
    """Average over the document's words of p(cell | word).

    ``p(cell | word)`` is the cell's unsmoothed word probability
    normalized over all non-empty cells, cached per word in an LRU of
    ``params.lru_cache_size`` entries. With a kernel bandwidth (in
    distance units) each cell's mass is spread to the others with a
    Gaussian kernel over central-point distances. A document with no
    known words gets every candidate at score 0 in iteration order.
    """
    params = grid.params
    if kernel_bandwidth is None:
        kernel_bandwidth = params.acp_kernel_bandwidth
    cache: OrderedDict[str, dict[int, float] | None] = OrderedDict()
    kernel: dict[int, list[tuple[int, float]]] | None = None

    def cell_probs_for_word(word: str, cells: list[GridCell]) -> dict[int, float] | None:
        if word in cache:
            cache.move_to_end(word)
            return cache[word]
        probs = {}
        for i, cell in enumerate(cells):
            p = cell.lm.unsmoothed_prob(word)
            if p > 0.0:
                probs[i] = p
        total = sum(probs.values())
        result = {i: p / total for i, p in probs.items()} if total > 0.0 else None
        cache[word] = result
        if len(cache) > params.lru_cache_size:
            cache.popitem(last=False)
        return result

    def kernel_weights(cells: list[GridCell]) -> dict[int, list[tuple[int, float]]]:
        nonlocal kernel
        if kernel is None:
            points = [cell.get_central_point() for cell in cells]
            kernel = {}
            for i, a in enumerate(points):
                weights = [
                    (j, math.exp(-(grid.distance(a, b) ** 2) / (2.0 * kernel_bandwidth ** 2)))
                    for j, b in enumerate(points)
                ]
                norm = sum(w for _, w in weights)
                kernel[i] = [(j, w / norm) for j, w in weights]
        return kernel

    def rank(doc, correct, include_correct):
        cells = grid.iter_nonempty_cells()
        mass = [0.0] * len(cells)
        total_count = 0.0
        for word, count in doc.lm.iter_items():
            probs = cell_probs_for_word(word, cells)
            if probs is None:
                continue
            total_count += count
            for i, p in probs.items():
                mass[i] += count * p
        if total_count == 0.0:
            candidates = grid.iter_nonempty_cells_including(correct, include_correct)
            return [(cell, 0.0) for cell in candidates]
        if kernel_bandwidth is not None:
            spread = [0.0] * len(cells)
            for i, weights in kernel_weights(cells).items():
                for j, w in weights:
                    spread[j] += mass[i] * w
            mass = spread
        ranking = [(cell, mass[i] / total_count) for i, cell in enumerate(cells)]
        if include_correct and correct is not None:
            if not any(cell is correct for cell in cells):
                ranking.append((correct, 0.0))
        ranking.sort(key=by_score, reverse=True)
        return ranking

    return GridRanker(RankerKind.AVERAGE_CELL_PROBABILITY, name, grid, rank)


# -- Factory --


RANKER_NAMES = (
    "random", "most-popular", "salience-most-popular",
    "partial-kl-divergence", "full-kl-divergence",
    "symmetric-partial-kl-divergence", "symmetric-full-kl-divergence",
    "partial-cosine-similarity", "full-cosine-similarity",
    "smoothed-partial-cosine-similarity", "smoothed-full-cosine-similarity",
    "sum-frequency", "naive-bayes", "average-cell-probability",
)


def create_ranker(name: str, grid: Grid) -> GridRanker:
    """Build a ranker from its strategy name."""
    if name == "random":
        return random_ranker(grid)
    if name == "most-popular":
        return most_popular_ranker(grid, salience=False)
    if name == "salience-most-popular":
        return most_popular_ranker(grid, salience=True, name=name)
    if name.endswith("kl-divergence"):
        variant = name[: -len("-kl-divergence")]
        symmetric = variant.startswith("symmetric-")
        if symmetric:
            variant = variant[len("symmetric-"):]
        if variant in ("partial", "full"):
            return kl_divergence_ranker(grid, partial=variant == "partial", symmetric=symmetric, name=name)
    if name.endswith("cosine-similarity"):
        variant = name[: -len("-cosine-similarity")]
        smoothed = variant.startswith("smoothed-")
        if smoothed:
            variant = variant[len("smoothed-"):]
        if variant in ("partial", "full"):
            return cosine_similarity_ranker(grid, smoothed=smoothed, partial=variant == "partial", name=name)
    if name == "sum-frequency":
        return sum_frequency_ranker(grid)
    if name == "naive-bayes":
        return naive_bayes_ranker(grid)
    if name == "average-cell-probability":
        return average_cell_probability_ranker(grid)
    raise ConfigError(f"Unknown ranker {name!r}; expected one of {RANKER_NAMES}")
