"""Data structures for gridlocate."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

TRAINING = "training"
DEV = "dev"
TEST = "test"


@dataclass(slots=True, frozen=True)
class RawDocument:
    """A document as handed over by the corpus reader.

    Exactly one of ``text`` and ``counts`` is normally given; a document
    with neither yields an empty language model. ``coord`` is None when
    the location is unknown.
    """

    title: str
    split: str
    coord: Any = None
    text: str | None = None
    counts: Mapping[str, float] | None = None
    salience: float | None = None  # e.g. Wikipedia incoming-link count
