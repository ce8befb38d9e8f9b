"""Tests for classifier persistence and checksum verification."""

import json

import pytest

import gridlocate
from gridlocate import StoreChecksumError, StoreError, StoreVersionError
from gridlocate._classifier import LinearClassifier, MultiLabelLinearClassifier
from gridlocate._store import load_classifier, save_classifier


def test_save_and_load_multilabel(tmp_path):
    classifier = MultiLabelLinearClassifier([{"paris": 1.5}, {"tokyo": -0.25, "sushi": 2.0}])
    save_classifier(classifier, tmp_path / "model")
    loaded = load_classifier(tmp_path / "model")
    assert isinstance(loaded, MultiLabelLinearClassifier)
    assert loaded.weights == classifier.weights


def test_save_and_load_linear(tmp_path):
    save_classifier(LinearClassifier({"-SCORE-": 0.75}), str(tmp_path))
    loaded = load_classifier(str(tmp_path))
    assert isinstance(loaded, LinearClassifier)
    assert loaded.score({"-SCORE-": 2.0}) == 1.5


def test_lazy_exports():
    assert gridlocate.load_classifier is load_classifier
    assert gridlocate.save_classifier is save_classifier
    with pytest.raises(AttributeError):
        gridlocate.no_such_thing


def test_missing_manifest(tmp_path):
    with pytest.raises(StoreError, match="manifest.json"):
        load_classifier(tmp_path)


def test_version_mismatch(tmp_path):
    save_classifier(LinearClassifier({"a": 1.0}), tmp_path)
    manifest_path = tmp_path / "manifest.json"
    manifest = json.loads(manifest_path.read_text())
    manifest["version"] = "0.9"
    manifest_path.write_text(json.dumps(manifest))
    with pytest.raises(StoreVersionError):
        load_classifier(tmp_path)


def test_tampered_weights(tmp_path):
    save_classifier(LinearClassifier({"a": 1.0}), tmp_path)
    weights = tmp_path / "weights.bin"
    weights.write_bytes(weights.read_bytes() + b"\x00")
    with pytest.raises(StoreChecksumError):
        load_classifier(tmp_path)


def test_missing_weights(tmp_path):
    save_classifier(LinearClassifier({"a": 1.0}), tmp_path)
    (tmp_path / "weights.bin").unlink()
    with pytest.raises(StoreError, match="Missing"):
        load_classifier(tmp_path)


def test_unsupported_classifier(tmp_path):
    with pytest.raises(StoreError):
        save_classifier(object(), tmp_path)
