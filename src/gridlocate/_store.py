"""Saving and loading trained classifiers, with SHA-256 checksum verification."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import msgpack
from tclogger import logger

from ._classifier import LinearClassifier, MultiLabelLinearClassifier
from ._errors import StoreChecksumError, StoreError, StoreVersionError

_EXPECTED_VERSION = "1.0"

_DATA_FILES = (
    "classifier.bin",
    "weights.bin",
)

_KINDS = {
    "linear": LinearClassifier,
    "multilabel": MultiLabelLinearClassifier,
}


def _sha256(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def _write_msgpack(path: Path, obj: Any) -> None:
    with open(path, "wb") as f:
        f.write(msgpack.packb(obj, use_bin_type=True))


def _load_msgpack(path: Path) -> Any:
    with open(path, "rb") as f:
        return msgpack.unpackb(f.read(), raw=False)


def _read_manifest(directory: Path) -> dict[str, Any]:
    manifest_path = directory / "manifest.json"
    if not manifest_path.exists():
        raise StoreError(f"manifest.json not found in {directory}")
    with open(manifest_path) as f:
        return json.load(f)


def _validate_manifest(manifest: dict[str, Any], directory: Path) -> None:
    version = manifest.get("version")
    if version != _EXPECTED_VERSION:
        raise StoreVersionError(
            f"Expected store version {_EXPECTED_VERSION!r}, got {version!r}"
        )
    checksums = manifest.get("files", {})
    for filename in _DATA_FILES:
        filepath = directory / filename
        if not filepath.exists():
            raise StoreError(f"Missing classifier file: {filepath}")
        expected = checksums.get(filename)
        if expected is None:
            raise StoreError(f"No checksum in manifest for {filename}")
        actual = _sha256(filepath)
        if actual != expected:
            raise StoreChecksumError(
                f"Checksum mismatch for {filename}: "
                f"expected {expected[:16]}..., got {actual[:16]}..."
            )


def save_classifier(
    classifier: LinearClassifier | MultiLabelLinearClassifier,
    directory: Path | str,
) -> Path:
    """Write ``classifier`` to ``directory`` and return the manifest path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    if isinstance(classifier, MultiLabelLinearClassifier):
        kind = "multilabel"
        weights = [dict(w) for w in classifier.weights]
    elif isinstance(classifier, LinearClassifier):
        kind = "linear"
        weights = [dict(classifier.weights)]
    else:
        raise StoreError(f"Can't save classifier of type {type(classifier).__name__}")

    _write_msgpack(directory / "classifier.bin", {"kind": kind, "num_labels": len(weights)})
    _write_msgpack(directory / "weights.bin", weights)

    manifest = {
        "version": _EXPECTED_VERSION,
        "files": {name: _sha256(directory / name) for name in _DATA_FILES},
    }
    manifest_path = directory / "manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)
    logger.success(f"+ Saved {kind} classifier to {directory}")
    return manifest_path


def load_classifier(
    directory: Path | str,
) -> LinearClassifier | MultiLabelLinearClassifier:
    """Load and verify a classifier written by ``save_classifier``."""
    directory = Path(directory)
    manifest = _read_manifest(directory)
    _validate_manifest(manifest, directory)

    header = _load_msgpack(directory / "classifier.bin")
    kind = header.get("kind")
    if kind not in _KINDS:
        raise StoreError(f"Unknown classifier kind {kind!r} in {directory}")
    weights: list[dict[str, float]] = _load_msgpack(directory / "weights.bin")
    if len(weights) != header.get("num_labels"):
        raise StoreError(
            f"Expected {header.get('num_labels')} weight vectors, got {len(weights)}"
        )
    if kind == "linear":
        return LinearClassifier(weights[0])
    return MultiLabelLinearClassifier(weights)
