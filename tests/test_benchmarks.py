"""Benchmark suite for gridlocate ranking.

Run:  pytest tests/test_benchmarks.py --benchmark-enable
Skip: pytest tests/ -m "not benchmark"
"""

from __future__ import annotations

import random

import pytest

from gridlocate import (
    TEST,
    TRAINING,
    DocumentFactory,
    GridLocateParams,
    LangModelFactory,
    MultiRegularGrid,
    RawDocument,
    SphereCoord,
)
from gridlocate._evaluation import RankedGridEvaluator
from gridlocate._hash import fnv1a_u64
from gridlocate._rankers import create_ranker
from gridlocate._tokenizer import Tokenizer

pytestmark = pytest.mark.benchmark

# ---------------------------------------------------------------------------
# Synthetic corpus: one regional vocabulary per 10x10 degree block
# ---------------------------------------------------------------------------

N_TRAINING = 400
N_TEST = 20
COMMON_WORDS = [f"common{i}" for i in range(50)]

SENTENCE_30W = (
    "The old harbour of New York was crowded with ships from every "
    "port along the coast while merchants argued over the price of "
    "grain and timber in the busy markets near the river"
)

PARAGRAPH_200W = " ".join([SENTENCE_30W] * 7)


def _synthetic_raw(title, split, rng):
    lat = rng.uniform(-60.0, 60.0)
    long = rng.uniform(-170.0, 170.0)
    region = f"region{int(lat // 10)}x{int(long // 10)}"
    counts = {region: rng.randint(3, 10)}
    for word in rng.sample(COMMON_WORDS, 8):
        counts[word] = rng.randint(1, 4)
    return RawDocument(title, split, coord=SphereCoord(lat, long), counts=counts)


@pytest.fixture(scope="module")
def corpus():
    rng = random.Random(1234)
    params = GridLocateParams()
    docfact = DocumentFactory(LangModelFactory(params.dirichlet_factor))
    grid = MultiRegularGrid(docfact, 10.0, params=params)
    grid.add_training_documents_to_grid(
        _synthetic_raw(f"train-{i}", TRAINING, rng) for i in range(N_TRAINING)
    )
    grid.finish()
    test_docs = [
        docfact.raw_document_to_document(_synthetic_raw(f"test-{i}", TEST, rng))
        for i in range(N_TEST)
    ]
    return grid, test_docs


@pytest.mark.parametrize("name", [
    "partial-kl-divergence", "partial-cosine-similarity",
    "naive-bayes", "average-cell-probability",
])
def test_bench_rank_document(benchmark, corpus, name):
    """Rank every non-empty cell for one document."""
    grid, test_docs = corpus
    ranker = create_ranker(name, grid)
    benchmark.extra_info["num_cells"] = grid.num_non_empty_cells
    benchmark(ranker.return_ranked_cells, test_docs[0])


def test_bench_evaluate(benchmark, corpus):
    """Evaluate the whole test set with partial KL-divergence."""
    grid, test_docs = corpus

    def run():
        evaluator = RankedGridEvaluator(create_ranker("partial-kl-divergence", grid))
        return evaluator.evaluate_documents(test_docs)

    results = benchmark.pedantic(run, rounds=3, iterations=1)
    assert len(results) == N_TEST


@pytest.mark.parametrize("stem", [False, True])
def test_bench_count_words(benchmark, stem):
    tokenizer = Tokenizer(["new york"], stem=stem)
    benchmark.extra_info["n_words"] = len(PARAGRAPH_200W.split())
    benchmark(tokenizer.count_words, PARAGRAPH_200W)


def test_bench_fnv1a_hash(benchmark):
    """FNV-1a u64 hash of a single word."""
    benchmark.pedantic(
        fnv1a_u64, args=("harbour",), rounds=1000, iterations=1000,
    )
