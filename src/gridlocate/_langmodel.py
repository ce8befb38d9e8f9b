"""Dirichlet-smoothed unigram language models with global back-off."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from typing import Iterator, Mapping

from ._errors import GridStateError


@dataclass(slots=True, frozen=True)
class KLDivergenceCache:
    """Precomputed per-word values of the left-hand model of a KL sum."""

    probs: dict[str, float]
    entropy_terms: dict[str, float]  # p * log(p)


class LangModelFactory:
    """Creates unigram models and owns the global back-off distribution.

    Training models are noted globally while they are read; once
    ``finish_global_distribution`` has been called the global counts are
    frozen and models can be finished.
    """

    __slots__ = (
        "dirichlet_factor", "_global_counts", "_global_tokens",
        "_global_finished",
    )

    def __init__(self, dirichlet_factor: float = 500.0) -> None:
        self.dirichlet_factor = dirichlet_factor
        self._global_counts: Counter[str] = Counter()
        self._global_tokens = 0.0
        self._global_finished = False

    @property
    def global_finished(self) -> bool:
        return self._global_finished

    @property
    def vocabulary(self) -> frozenset[str]:
        return frozenset(self._global_counts)

    def create_lang_model(self) -> UnigramLangModel:
        return UnigramLangModel(self)

    def note_lang_model_globally(self, lm: UnigramLangModel) -> None:
        if self._global_finished:
            raise GridStateError(
                "Can't note a language model after the global "
                "distribution is finished"
            )
        for word, count in lm.iter_items():
            self._global_counts[word] += count
        self._global_tokens += lm.num_tokens

    def finish_global_distribution(self) -> None:
        if self._global_finished:
            raise GridStateError("Global distribution already finished")
        self._global_finished = True

    def global_prob(self, word: str) -> float:
        if self._global_tokens == 0.0:
            return 0.0
        return self._global_counts.get(word, 0.0) / self._global_tokens


class UnigramLangModel:
    """Word counts plus Dirichlet smoothing toward the global distribution.

    ``p(w) = (c(w) + mu * p_global(w)) / (N + mu)``. Words with zero
    probability on either side of a comparison are left out of KL sums
    and log-likelihoods rather than producing infinities.
    """

    __slots__ = (
        "factory", "_counts", "_num_tokens", "_finished_before_global",
        "_finished", "_unseen_mass",
    )

    def __init__(self, factory: LangModelFactory) -> None:
        self.factory = factory
        self._counts: dict[str, float] = {}
        self._num_tokens = 0.0
        self._finished_before_global = False
        self._finished = False
        self._unseen_mass = 1.0

    def __repr__(self) -> str:
        unfinished = "" if self._finished else ", unfinished"
        return (
            f"UnigramLangModel({self.num_types} types, "
            f"{self._num_tokens:g} tokens{unfinished})"
        )

    # -- Construction --

    def _check_mutable(self) -> None:
        if self._finished_before_global:
            raise GridStateError("Language model is already finished")

    def add_word(self, word: str, count: float = 1.0) -> None:
        self._check_mutable()
        self._counts[word] = self._counts.get(word, 0.0) + count
        self._num_tokens += count

    def add_counts(self, counts: Mapping[str, float]) -> None:
        for word, count in counts.items():
            if count > 0:
                self.add_word(word, float(count))

    def add_word_distribution(
        self, other: UnigramLangModel, weight: float = 1.0
    ) -> None:
        """Merge ``other``'s counts scaled by ``weight``."""
        self._check_mutable()
        for word, count in other._counts.items():
            self._counts[word] = self._counts.get(word, 0.0) + count * weight
        self._num_tokens += other._num_tokens * weight

    def finish_before_global(self) -> None:
        self._check_mutable()
        self._finished_before_global = True

    def finish_after_global(self) -> None:
        if not self._finished_before_global:
            raise GridStateError("finish_before_global() not called")
        if self._finished:
            raise GridStateError("Language model is already finished")
        if not self.factory.global_finished:
            raise GridStateError(
                "Global distribution must be finished before "
                "finish_after_global()"
            )
        mu = self.factory.dirichlet_factor
        self._unseen_mass = 1.0 - self._num_tokens / (self._num_tokens + mu)
        self._finished = True

    def finish(self) -> None:
        self.finish_before_global()
        self.finish_after_global()

    # -- Accessors --

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def num_tokens(self) -> float:
        return self._num_tokens

    @property
    def num_types(self) -> int:
        return len(self._counts)

    @property
    def is_empty(self) -> bool:
        return self._num_tokens == 0.0

    def iter_items(self) -> Iterator[tuple[str, float]]:
        return iter(self._counts.items())

    def get_item(self, word: str) -> float:
        return self._counts.get(word, 0.0)

    def unsmoothed_prob(self, word: str) -> float:
        if self._num_tokens == 0.0:
            return 0.0
        return self._counts.get(word, 0.0) / self._num_tokens

    def lookup_word(self, word: str) -> float:
        """Smoothed probability of ``word``."""
        if not self._finished:
            raise GridStateError(f"Lookup in unfinished model {self!r}")
        pglobal = self.factory.global_prob(word)
        if self._num_tokens == 0.0:
            return pglobal
        seen = self._counts.get(word, 0.0) / self._num_tokens
        return (1.0 - self._unseen_mass) * seen + self._unseen_mass * pglobal

    # -- Comparisons --

    def get_kl_divergence_cache(self) -> KLDivergenceCache:
        probs: dict[str, float] = {}
        entropy_terms: dict[str, float] = {}
        for word in self._counts:
            p = self.lookup_word(word)
            probs[word] = p
            entropy_terms[word] = p * math.log(p) if p > 0.0 else 0.0
        return KLDivergenceCache(probs, entropy_terms)

    def _kl_words(self, other: UnigramLangModel, partial: bool) -> Iterator[str]:
        yield from self._counts
        if not partial:
            for word in other._counts:
                if word not in self._counts:
                    yield word
            for word in self.factory.vocabulary:
                if word not in self._counts and word not in other._counts:
                    yield word

    def kl_divergence(
        self,
        other: UnigramLangModel,
        partial: bool = True,
        cache: KLDivergenceCache | None = None,
    ) -> float:
        """KL(self || other).

        If ``partial``, only words present in this model are summed over,
        which is not a true divergence but is what makes ranking against
        large vocabularies tractable.
        """
        total = 0.0
        for word in self._kl_words(other, partial):
            if cache is not None and word in cache.probs:
                p = cache.probs[word]
                plogp = cache.entropy_terms[word]
            else:
                p = self.lookup_word(word)
                plogp = p * math.log(p) if p > 0.0 else 0.0
            if p <= 0.0:
                continue
            q = other.lookup_word(word)
            if q <= 0.0:
                continue
            total += plogp - p * math.log(q)
        return total

    def kl_divergence_debug(
        self, other: UnigramLangModel, partial: bool = True
    ) -> tuple[float, dict[str, float]]:
        """Like ``kl_divergence`` but also return each word's contribution."""
        contribs: dict[str, float] = {}
        total = 0.0
        for word in self._kl_words(other, partial):
            p = self.lookup_word(word)
            q = other.lookup_word(word)
            if p <= 0.0 or q <= 0.0:
                continue
            contrib = p * (math.log(p) - math.log(q))
            contribs[word] = contrib
            total += contrib
        return total, contribs

    def cosine_similarity(
        self,
        other: UnigramLangModel,
        partial: bool = True,
        smoothed: bool = False,
    ) -> float:
        """Cosine of the angle between the two word-probability vectors.

        ``partial`` restricts both vectors to the words of this model.
        """
        value = self.lookup_word if smoothed else self.unsmoothed_prob
        other_value = other.lookup_word if smoothed else other.unsmoothed_prob
        if partial:
            words: set[str] | dict[str, float] = self._counts
        else:
            words = set(self._counts) | set(other._counts)
            if smoothed:
                words |= self.factory.vocabulary
        dot = 0.0
        norm_a = 0.0
        norm_b = 0.0
        for word in words:
            a = value(word)
            b = other_value(word)
            dot += a * b
            norm_a += a * a
            norm_b += b * b
        denom = math.sqrt(norm_a) * math.sqrt(norm_b)
        if denom == 0.0:
            return 0.0
        return dot / denom

    def sum_frequency(self, other: UnigramLangModel) -> float:
        """Sum over this model's tokens of ``other``'s unsmoothed probability."""
        return sum(
            count * other.unsmoothed_prob(word)
            for word, count in self._counts.items()
        )

    def model_logprob(self, other: UnigramLangModel) -> float:
        """Log-likelihood of ``other``'s words under this model."""
        total = 0.0
        for word, count in other._counts.items():
            p = self.lookup_word(word)
            if p > 0.0:
                total += count * math.log(p)
        return total
