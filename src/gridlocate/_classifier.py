"""Linear classifiers, perceptron trainers and batch scorers."""

from __future__ import annotations

import math
import os
import subprocess
import tempfile
from typing import TYPE_CHECKING, Protocol, Sequence

from tclogger import logger

from ._errors import ConfigError, ExternalScorerError
from ._hash import feature_index

if TYPE_CHECKING:
    from ._config import GridLocateParams
    from ._features import FeatureVector


def dot(weights: dict[str, float], fv: FeatureVector) -> float:
    return sum(weights.get(name, 0.0) * value for name, value in fv.items())


class LinearClassifier:
    """Single weight vector scoring one feature vector at a time."""

    __slots__ = ("weights",)

    def __init__(self, weights: dict[str, float] | None = None) -> None:
        self.weights = dict(weights or {})

    def score(self, fv: FeatureVector) -> float:
        return dot(self.weights, fv)


class MultiLabelLinearClassifier:
    """One weight vector per label, all applied to the same features."""

    __slots__ = ("weights",)

    def __init__(self, weights: Sequence[dict[str, float]]) -> None:
        self.weights = [dict(w) for w in weights]

    @property
    def num_labels(self) -> int:
        return len(self.weights)

    def score_label(self, fv: FeatureVector, label: int) -> float:
        return dot(self.weights[label], fv)

    def score_all(self, fv: FeatureVector) -> list[float]:
        return [dot(w, fv) for w in self.weights]


# -- Training --


class _AveragedWeights:
    """Perceptron weights with the lazy averaging trick: the average is
    ``w - u / c`` where ``u`` accumulates updates scaled by the step."""

    __slots__ = ("w", "u", "c")

    def __init__(self) -> None:
        self.w: dict[str, float] = {}
        self.u: dict[str, float] = {}
        self.c = 1

    def update(self, fv: FeatureVector, scale: float) -> None:
        for name, value in fv.items():
            delta = scale * value
            self.w[name] = self.w.get(name, 0.0) + delta
            self.u[name] = self.u.get(name, 0.0) + self.c * delta

    def result(self, averaged: bool) -> dict[str, float]:
        if not averaged:
            return dict(self.w)
        return {name: value - self.u[name] / self.c for name, value in self.w.items()}


def _log_weights(weights: dict[str, float], label: str, limit: int = 20) -> None:
    top = sorted(weights.items(), key=lambda kv: abs(kv[1]), reverse=True)[:limit]
    logger.hint(f"  * Weights for {label}:")
    for name, value in top:
        logger.hint(f"    {name}: {value:.6f}")


class RankingPerceptronTrainer:
    """Averaged ranking perceptron over groups of candidate vectors.

    Each training item is ``(candidate_vectors, correct_index)``. When the
    best-scoring wrong candidate scores at least as high as the correct
    one, the weights move toward the correct vector and away from it.
    """

    def __init__(
        self,
        iterations: int = 10,
        learning_rate: float = 1.0,
        averaged: bool = True,
        show_weights: bool = False,
    ) -> None:
        if iterations < 1:
            raise ConfigError(f"iterations must be >= 1, got {iterations}")
        self.iterations = iterations
        self.learning_rate = learning_rate
        self.averaged = averaged
        self.show_weights = show_weights

    @classmethod
    def from_params(cls, params: GridLocateParams) -> RankingPerceptronTrainer:
        return cls(
            iterations=params.perceptron_iterations,
            learning_rate=params.perceptron_learning_rate,
            show_weights=params.debugging("weights"),
        )

    def __call__(
        self, groups: Sequence[tuple[Sequence[FeatureVector], int]]
    ) -> LinearClassifier:
        state = _AveragedWeights()
        for _ in range(self.iterations):
            for fvs, correct in groups:
                if len(fvs) > 1:
                    scores = [dot(state.w, fv) for fv in fvs]
                    wrong = max(
                        (i for i in range(len(fvs)) if i != correct),
                        key=lambda i: scores[i],
                    )
                    if scores[wrong] >= scores[correct]:
                        state.update(fvs[correct], self.learning_rate)
                        state.update(fvs[wrong], -self.learning_rate)
                state.c += 1
        weights = state.result(self.averaged)
        if self.show_weights:
            _log_weights(weights, "ranking classifier")
        return LinearClassifier(weights)


class MultiLabelPerceptronTrainer:
    """Averaged multi-class perceptron over ``(features, label)`` items."""

    def __init__(
        self,
        iterations: int = 10,
        learning_rate: float = 1.0,
        averaged: bool = True,
        show_weights: bool = False,
    ) -> None:
        if iterations < 1:
            raise ConfigError(f"iterations must be >= 1, got {iterations}")
        self.iterations = iterations
        self.learning_rate = learning_rate
        self.averaged = averaged
        self.show_weights = show_weights

    @classmethod
    def from_params(cls, params: GridLocateParams) -> MultiLabelPerceptronTrainer:
        return cls(
            iterations=params.perceptron_iterations,
            learning_rate=params.perceptron_learning_rate,
            show_weights=params.debugging("weights"),
        )

    def __call__(
        self, data: Sequence[tuple[FeatureVector, int]], num_labels: int
    ) -> MultiLabelLinearClassifier:
        if num_labels < 1:
            raise ConfigError(f"num_labels must be >= 1, got {num_labels}")
        states = [_AveragedWeights() for _ in range(num_labels)]
        step = 1
        for _ in range(self.iterations):
            for fv, label in data:
                for state in states:
                    state.c = step
                if num_labels > 1:
                    scores = [dot(state.w, fv) for state in states]
                    wrong = max(
                        (i for i in range(num_labels) if i != label),
                        key=lambda i: scores[i],
                    )
                    if scores[wrong] >= scores[label]:
                        states[label].update(fv, self.learning_rate)
                        states[wrong].update(fv, -self.learning_rate)
                step += 1
        for state in states:
            state.c = step
        weights = [state.result(self.averaged) for state in states]
        if self.show_weights:
            for label, w in enumerate(weights):
                _log_weights(w, f"label {label}")
        return MultiLabelLinearClassifier(weights)


# -- Batch scoring --


class BatchScorer(Protocol):
    """Maps a batch of feature vectors to one raw score per label each.

    In cost-sensitive mode the raw scores are costs, lower is better.
    """

    num_labels: int

    def __call__(
        self, fvs: Sequence[FeatureVector], cost_sensitive: bool
    ) -> list[list[float]]: ...


class ClassifierBatchScorer:
    """In-process batch scorer backed by a multi-label linear classifier."""

    def __init__(self, classifier: MultiLabelLinearClassifier) -> None:
        self.classifier = classifier
        self.num_labels = classifier.num_labels

    def __call__(
        self, fvs: Sequence[FeatureVector], cost_sensitive: bool
    ) -> list[list[float]]:
        rows = [self.classifier.score_all(fv) for fv in fvs]
        if cost_sensitive:
            return [[-score for score in row] for row in rows]
        return rows


class ExternalBatchScorer:
    """Runs an external linear-model tool once per batch.

    ``command`` is an argument list in which ``{features}`` and
    ``{predictions}`` are replaced by file paths inside a temporary
    directory that exists only for the duration of one call. The features
    file has one line per document::

        <label> | <index>:<value> ...            (plain)
        1:0 2:0 ... <n>:0 | <index>:<value> ...  (cost-sensitive)

    with 1-based labels and hashed feature indices. The tool must write
    one line per document of ``<label>:<score>`` pairs.
    """

    def __init__(
        self,
        command: Sequence[str],
        num_labels: int,
        feature_bits: int = 18,
        timeout: float | None = None,
        verbose: bool = False,
    ) -> None:
        if not command:
            raise ConfigError("External scorer command is empty")
        if num_labels < 1:
            raise ConfigError(f"num_labels must be >= 1, got {num_labels}")
        self.command = list(command)
        self.num_labels = num_labels
        self.feature_bits = feature_bits
        self.timeout = timeout
        self.verbose = verbose

    def format_features(self, fv: FeatureVector) -> str:
        by_index: dict[int, float] = {}
        for name, value in fv.items():
            index = feature_index(name, self.feature_bits)
            by_index[index] = by_index.get(index, 0.0) + value
        return " ".join(f"{index}:{value:.8g}" for index, value in sorted(by_index.items()))

    def write_feature_file(
        self, path: str, fvs: Sequence[FeatureVector], cost_sensitive: bool
    ) -> None:
        if cost_sensitive:
            # The costs written here are placeholders; only the features matter
            prefix = " ".join(f"{label}:0" for label in range(1, self.num_labels + 1))
        else:
            prefix = "1"
        with open(path, "w", encoding="utf-8") as f:
            for fv in fvs:
                f.write(f"{prefix} | {self.format_features(fv)}\n")

    def parse_predictions(self, path: str, num_docs: int) -> list[list[float]]:
        if not os.path.exists(path):
            raise ExternalScorerError(f"External scorer wrote no predictions to {path}")
        rows: list[list[float]] = []
        with open(path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                scores: dict[int, float] = {}
                try:
                    for token in line.split():
                        label, score = token.split(":", 1)
                        scores[int(label)] = float(score)
                except ValueError as e:
                    raise ExternalScorerError(
                        f"Bad prediction line {lineno}: {line!r}"
                    ) from e
                if sorted(scores) != list(range(1, self.num_labels + 1)):
                    raise ExternalScorerError(
                        f"Prediction line {lineno} has labels {sorted(scores)}, "
                        f"expected 1..{self.num_labels}"
                    )
                rows.append([scores[label] for label in range(1, self.num_labels + 1)])
        if len(rows) != num_docs:
            raise ExternalScorerError(
                f"External scorer returned {len(rows)} rows for {num_docs} documents"
            )
        return rows

    def __call__(
        self, fvs: Sequence[FeatureVector], cost_sensitive: bool
    ) -> list[list[float]]:
        with tempfile.TemporaryDirectory(prefix="gridlocate-") as tmpdir:
            features_path = os.path.join(tmpdir, "features.txt")
            predictions_path = os.path.join(tmpdir, "predictions.txt")
            self.write_feature_file(features_path, fvs, cost_sensitive)
            args = [
                arg.replace("{features}", features_path)
                .replace("{predictions}", predictions_path)
                for arg in self.command
            ]
            logger.note(f"> Running external scorer on {len(fvs)} documents ...", verbose=self.verbose)
            try:
                proc = subprocess.run(
                    args, capture_output=True, text=True, timeout=self.timeout,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                raise ExternalScorerError(f"Can't run external scorer {args[0]!r}: {e}") from e
            if proc.returncode != 0:
                raise ExternalScorerError(
                    f"External scorer exited with status {proc.returncode}: "
                    f"{proc.stderr.strip()}"
                )
            return self.parse_predictions(predictions_path, len(fvs))


def _sigmoid(x: float) -> float:
    if x >= 0.0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def raw_scores_to_logprobs(
    raw: Sequence[float], cost_sensitive: bool, normalize: bool = True
) -> list[float]:
    """Convert one document's raw per-label scores to log-probabilities.

    Cost-sensitive scores are costs and are negated. Plain scores go
    through the logistic function and, with ``normalize``, are rescaled to
    sum to one across labels before taking the log.
    """
    if cost_sensitive:
        return [-score for score in raw]
    probs = [_sigmoid(score) for score in raw]
    norm = sum(probs) if normalize else 1.0
    return [math.log(p / norm) if p > 0.0 else -math.inf for p in probs]
