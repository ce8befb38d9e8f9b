"""Compound scan (Aho-Corasick) and word counting for raw document text."""

from __future__ import annotations

import re
from collections import Counter
from typing import TYPE_CHECKING, Iterable

import ahocorasick
import Stemmer

from ._stop_words import STOP_WORDS

if TYPE_CHECKING:
    from collections.abc import Collection

_WORD_RE = re.compile(r"[a-z0-9]+")


class Tokenizer:
    """Turn raw text into unigram counts.

    Compound terms (e.g. ``"new york"``) are matched first and counted as
    single words; the remaining text is split on ``_WORD_RE``, stop words
    are dropped and, if ``stem`` is set, words are reduced by the Snowball
    English stemmer.
    """

    __slots__ = (
        "_compound_ac", "_compound_strings", "_stemmer", "_stop_words",
    )

    def __init__(
        self,
        compounds: Iterable[str] = (),
        *,
        stem: bool = False,
        stop_words: Collection[str] | None = STOP_WORDS,
    ) -> None:
        self._compound_strings: list[str] = []
        self._compound_ac = None
        self._stemmer = Stemmer.Stemmer("english") if stem else None
        self._stop_words = frozenset(stop_words or ())
        self.rebuild_compounds(compounds)

    def rebuild_compounds(self, compounds: Iterable[str]) -> None:
        """Replace the compound list and rebuild the automaton."""
        strings = sorted({" ".join(c.lower().split()) for c in compounds} - {""})
        self._compound_strings = strings
        if not strings:
            self._compound_ac = None
            return
        ac = ahocorasick.Automaton()
        for idx, compound_str in enumerate(strings):
            ac.add_word(compound_str, idx)
        ac.make_automaton()
        self._compound_ac = ac

    def scan_compounds(
        self, text_lower: str
    ) -> tuple[list[str], list[tuple[int, int]]]:
        """Return (matched_compounds, consumed_spans).

        Matches must start and end on word boundaries; overlapping matches
        are resolved leftmost-longest.
        """
        if self._compound_ac is None:
            return [], []

        raw_matches: list[tuple[int, int, int]] = []
        n = len(text_lower)
        for end_inclusive, idx in self._compound_ac.iter(text_lower):
            end = end_inclusive + 1
            start = end - len(self._compound_strings[idx])
            if start > 0 and text_lower[start - 1].isalnum():
                continue
            if end < n and text_lower[end].isalnum():
                continue
            raw_matches.append((start, end, idx))

        raw_matches.sort(key=lambda m: (m[0], -(m[1] - m[0])))

        matched: list[str] = []
        consumed: list[tuple[int, int]] = []
        last_end = -1
        for start, end, idx in raw_matches:
            if start >= last_end:
                matched.append(self._compound_strings[idx])
                consumed.append((start, end))
                last_end = end

        return matched, consumed

    def tokenize(
        self, text_lower: str, consumed_spans: list[tuple[int, int]]
    ) -> list[str]:
        """Split the text outside compound spans into normalized words."""
        words: list[str] = []
        for m in _WORD_RE.finditer(text_lower):
            tok_start, tok_end = m.start(), m.end()
            if any(tok_start >= cs and tok_end <= ce for cs, ce in consumed_spans):
                continue
            token = m.group()
            if token in self._stop_words:
                continue
            if self._stemmer is not None:
                token = self._stemmer.stemWord(token)
            words.append(token)
        return words

    def count_words(self, text: str) -> Counter[str]:
        """Run the full pipeline and return word counts."""
        text_lower = " ".join(text.lower().split())
        compounds, consumed = self.scan_compounds(text_lower)
        counts = Counter(compounds)
        counts.update(self.tokenize(text_lower, consumed))
        return counts
