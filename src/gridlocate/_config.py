"""Tunable parameters shared by grids, rankers and evaluators."""

from __future__ import annotations

from dataclasses import dataclass, field

from ._errors import ConfigError

CENTER_METHODS = ("centroid", "center")
PRIOR_METHODS = ("num_docs", "salience")
DEBUG_FLAGS = frozenset({
    "ranking",          # per-cell trace while scoring
    "kldiv",            # words contributing most to KL-divergence
    "hier-gridrank",    # full ranking at every hierarchical level
    "hier-classifier",  # beam substitutions in hierarchical ranking
    "weights",          # trained classifier weights
    "individual",       # per-document evaluation results
})


@dataclass(frozen=True)
class GridLocateParams:
    """Parameter set for one grid-locate experiment.

    Defaults reproduce the behavior the rankers were tuned with; every
    value is checked in ``__post_init__`` so a bad option fails at
    construction time rather than halfway through an evaluation.
    """

    # Point used for distances: centroid of training docs or geometric center
    center_method: str = "centroid"
    # Cell prior for Naive Bayes: document count or summed salience
    prior_method: str = "num_docs"
    # Weight of the prior term; the word term gets 1 - this
    naive_bayes_prior_weight: float = 0.5
    # Dirichlet smoothing mass for unigram language models
    dirichlet_factor: float = 500.0
    # Score cells with a thread pool instead of serially
    parallel: bool = False
    max_workers: int | None = None
    # Seed for the random baseline; None means a fresh shuffle each call
    random_seed: int | None = None
    # KL-divergence debug output limits
    kldiv_num_contrib_cells: int = 5
    kldiv_num_contrib_words: int = 25
    # Ranks 1..max_rank_for_credit earn partial credit
    max_rank_for_credit: int = 10
    # Evaluation driver
    oracle_results: bool = False
    num_test_docs: int = 0
    skip_initial_test_docs: int = 0
    every_nth_test_doc: int = 1
    # Reranking
    rerank_top_n: int = 50
    perceptron_iterations: int = 10
    perceptron_learning_rate: float = 1.0
    # Hierarchical classification
    beam_size: int = 10
    # Interpolating ranker: weight of the background ranker
    interpolate_factor: float = 0.5
    # Renormalize batch classifier probabilities across labels
    normalize_batch_scores: bool = True
    # Average-cell-probability ranker
    acp_kernel_bandwidth: float | None = None
    lru_cache_size: int = 400
    # Debug flags (see DEBUG_FLAGS) and titles selected for hier-gridrank
    debug: frozenset[str] = field(default_factory=frozenset)
    debug_titles: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.center_method not in CENTER_METHODS:
            raise ConfigError(
                f"center_method must be one of {CENTER_METHODS}, "
                f"got {self.center_method!r}"
            )
        if self.prior_method not in PRIOR_METHODS:
            raise ConfigError(
                f"prior_method must be one of {PRIOR_METHODS}, "
                f"got {self.prior_method!r}"
            )
        if not (0.0 <= self.naive_bayes_prior_weight <= 1.0):
            raise ConfigError(
                "naive_bayes_prior_weight must be in [0.0, 1.0], "
                f"got {self.naive_bayes_prior_weight}"
            )
        if not (0.0 <= self.interpolate_factor <= 1.0):
            raise ConfigError(
                "interpolate_factor must be in [0.0, 1.0], "
                f"got {self.interpolate_factor}"
            )
        if self.dirichlet_factor <= 0.0:
            raise ConfigError(
                f"dirichlet_factor must be > 0, got {self.dirichlet_factor}"
            )
        for name in (
            "kldiv_num_contrib_cells", "kldiv_num_contrib_words",
            "max_rank_for_credit", "every_nth_test_doc", "rerank_top_n",
            "perceptron_iterations", "beam_size", "lru_cache_size",
        ):
            value = getattr(self, name)
            if value < 1:
                raise ConfigError(f"{name} must be >= 1, got {value}")
        for name in ("num_test_docs", "skip_initial_test_docs"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigError(f"{name} must be >= 0, got {value}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.acp_kernel_bandwidth is not None and self.acp_kernel_bandwidth <= 0:
            raise ConfigError(
                "acp_kernel_bandwidth must be > 0, "
                f"got {self.acp_kernel_bandwidth}"
            )
        unknown = set(self.debug) - DEBUG_FLAGS
        if unknown:
            raise ConfigError(f"Unknown debug flags: {sorted(unknown)}")
        # Accept any iterable for the two set-valued fields
        object.__setattr__(self, "debug", frozenset(self.debug))
        object.__setattr__(self, "debug_titles", frozenset(self.debug_titles))

    def debugging(self, flag: str, title: str | None = None) -> bool:
        """True if ``flag`` is on for the document titled ``title``.

        A non-empty ``debug_titles`` narrows the ``hier-gridrank`` trace to
        the listed titles; other flags apply to every document.
        """
        if flag not in self.debug:
            return False
        if flag == "hier-gridrank" and self.debug_titles:
            return title in self.debug_titles
        return True
