"""Tests for linear classifiers, perceptron trainers and batch scorers."""

import math
import sys
import textwrap

import pytest

from gridlocate import ConfigError, ExternalScorerError
from gridlocate._classifier import (
    ClassifierBatchScorer,
    ExternalBatchScorer,
    LinearClassifier,
    MultiLabelLinearClassifier,
    MultiLabelPerceptronTrainer,
    RankingPerceptronTrainer,
    raw_scores_to_logprobs,
)
from gridlocate._hash import feature_index


# A stand-in for an external linear-model tool: one prediction line per
# feature line, label 2 always winning.
FAKE_TOOL = textwrap.dedent("""
    import sys

    features, predictions, num_labels = sys.argv[1], sys.argv[2], int(sys.argv[3])
    mode = sys.argv[4] if len(sys.argv) > 4 else "ok"
    if mode == "fail":
        sys.stderr.write("model file missing")
        sys.exit(3)
    with open(features) as f, open(predictions, "w") as out:
        for line in f:
            labels = range(1, num_labels + 1)
            if mode == "short":
                labels = range(1, num_labels)
            out.write(" ".join(f"{k}:{1.0 if k == 2 else -1.0}" for k in labels) + "\\n")
""")


@pytest.fixture
def fake_tool(tmp_path):
    path = tmp_path / "fake_tool.py"
    path.write_text(FAKE_TOOL)
    return str(path)


def _external(fake_tool, num_labels=3, mode="ok"):
    command = [sys.executable, fake_tool, "{features}", "{predictions}", str(num_labels), mode]
    return ExternalBatchScorer(command, num_labels)


def test_linear_classifier_score():
    classifier = LinearClassifier({"a": 2.0, "b": -1.0})
    assert classifier.score({"a": 1.0, "b": 3.0, "c": 9.0}) == -1.0


def test_multilabel_score_all():
    classifier = MultiLabelLinearClassifier([{"a": 1.0}, {"b": 1.0}])
    assert classifier.num_labels == 2
    assert classifier.score_all({"a": 2.0}) == [2.0, 0.0]
    assert classifier.score_label({"b": 3.0}, 1) == 3.0


def test_multilabel_perceptron_separates():
    data = [({"a": 1.0}, 0), ({"b": 1.0}, 1), ({"c": 1.0, "a": 0.2}, 2)]
    classifier = MultiLabelPerceptronTrainer(iterations=5)(data, 3)
    for fv, label in data:
        scores = classifier.score_all(fv)
        assert max(range(3), key=scores.__getitem__) == label


def test_ranking_perceptron_prefers_correct():
    groups = [
        ([{"bad": 1.0}, {"good": 1.0}], 1),
        ([{"good": 1.0, "x": 1.0}, {"bad": 1.0, "x": 1.0}], 0),
    ]
    classifier = RankingPerceptronTrainer(iterations=3)(groups)
    assert classifier.score({"good": 1.0}) > classifier.score({"bad": 1.0})


def test_unaveraged_perceptron():
    classifier = RankingPerceptronTrainer(iterations=1, averaged=False)(
        [([{"bad": 1.0}, {"good": 1.0}], 1)]
    )
    assert classifier.weights == {"good": 1.0, "bad": -1.0}


def test_trainer_options_checked():
    with pytest.raises(ConfigError):
        RankingPerceptronTrainer(iterations=0)
    with pytest.raises(ConfigError):
        MultiLabelPerceptronTrainer()([], 0)


def test_classifier_batch_scorer_cost_sensitive():
    scorer = ClassifierBatchScorer(MultiLabelLinearClassifier([{"a": 1.0}, {"a": -1.0}]))
    assert scorer([{"a": 2.0}], cost_sensitive=False) == [[2.0, -2.0]]
    assert scorer([{"a": 2.0}], cost_sensitive=True) == [[-2.0, 2.0]]


def test_raw_scores_to_logprobs():
    logprobs = raw_scores_to_logprobs([2.0, 0.0, -1.0], cost_sensitive=False)
    assert sum(math.exp(p) for p in logprobs) == pytest.approx(1.0)
    assert logprobs[0] > logprobs[1] > logprobs[2]
    unnormalized = raw_scores_to_logprobs([0.0], cost_sensitive=False, normalize=False)
    assert unnormalized == [pytest.approx(math.log(0.5))]
    assert raw_scores_to_logprobs([1.5, -0.5], cost_sensitive=True) == [-1.5, 0.5]
    # Large raw scores must not overflow
    assert raw_scores_to_logprobs([-1000.0, 1000.0], cost_sensitive=False)[1] == pytest.approx(0.0)


def test_format_features_hashes_and_sorts(fake_tool):
    scorer = _external(fake_tool)
    line = scorer.format_features({"paris": 0.5, "wine": 0.25})
    pairs = [token.split(":") for token in line.split()]
    indices = [int(index) for index, _ in pairs]
    assert indices == sorted(indices)
    assert dict((int(i), float(v)) for i, v in pairs) == {
        feature_index("paris"): 0.5, feature_index("wine"): 0.25,
    }


def test_write_feature_file_modes(fake_tool, tmp_path):
    scorer = _external(fake_tool)
    path = tmp_path / "features.txt"
    scorer.write_feature_file(str(path), [{"a": 1.0}], cost_sensitive=False)
    assert path.read_text().startswith("1 | ")
    scorer.write_feature_file(str(path), [{"a": 1.0}, {}], cost_sensitive=True)
    lines = path.read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("1:0 2:0 3:0 | ")


def test_external_scorer_round_trip(fake_tool):
    scorer = _external(fake_tool)
    rows = scorer([{"a": 1.0}, {"b": 2.0}], cost_sensitive=False)
    assert rows == [[-1.0, 1.0, -1.0], [-1.0, 1.0, -1.0]]


def test_external_scorer_failure(fake_tool):
    with pytest.raises(ExternalScorerError, match="model file missing"):
        _external(fake_tool, mode="fail")([{"a": 1.0}], cost_sensitive=False)


def test_external_scorer_wrong_labels(fake_tool):
    with pytest.raises(ExternalScorerError):
        _external(fake_tool, mode="short")([{"a": 1.0}], cost_sensitive=False)


def test_external_scorer_missing_program():
    scorer = ExternalBatchScorer(["/nonexistent/linear-tool", "{features}"], 2)
    with pytest.raises(ExternalScorerError):
        scorer([{"a": 1.0}], cost_sensitive=False)


def test_parse_predictions_errors(fake_tool, tmp_path):
    scorer = _external(fake_tool, num_labels=2)
    path = tmp_path / "predictions.txt"
    with pytest.raises(ExternalScorerError):
        scorer.parse_predictions(str(path), 1)
    path.write_text("1:0.5 2:oops\n")
    with pytest.raises(ExternalScorerError):
        scorer.parse_predictions(str(path), 1)
    path.write_text("1:0.5 2:0.1\n")
    assert scorer.parse_predictions(str(path), 1) == [[0.5, 0.1]]
    with pytest.raises(ExternalScorerError):
        scorer.parse_predictions(str(path), 2)


def test_external_scorer_options():
    with pytest.raises(ConfigError):
        ExternalBatchScorer([], 2)
    with pytest.raises(ConfigError):
        ExternalBatchScorer(["tool"], 0)
