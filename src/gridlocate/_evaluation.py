"""Evaluation of grid rankers against documents with known coordinates."""

from __future__ import annotations

import itertools
import math
import statistics
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from tclogger import logger

from ._errors import GridStateError
from ._ranges import LazyTable, TableByRange
from ._sphere import KM_PER_MILE

if TYPE_CHECKING:
    from ._cell import GridCell
    from ._document import GridDoc
    from ._grid import Grid
    from ._rankers import GridRanker

# Rank recorded when the correct cell is not in the ranking
RANK_NOT_FOUND = 1_000_000_000

NAITR_BREAKPOINTS = (1, 10, 25, 100)
DIST_FRACTION_INCREMENT = 0.25
DIST_FRACTIONS_FOR_ERROR_DIST = (
    0.25, 0.5, 0.75, 1, 1.5, 2, 3, 4, 6, 8,
    12, 16, 24, 32, 48, 64, 96, 128, 192, 256,
    384, 512, 768, 1024, 1536, 2048,
)

SKIPPED_NO_COORD = "Skipped documents without coordinates"
SKIPPED_NO_WORDS = "Skipped documents with empty language models"


def find_rank(pred_cells: list[tuple[GridCell, float]], correct: GridCell) -> int:
    """1-based rank of ``correct`` in ``pred_cells``, or ``RANK_NOT_FOUND``."""
    for rank, (cell, _) in enumerate(
        itertools.islice(pred_cells, RANK_NOT_FOUND - 1), start=1
    ):
        if cell is correct:
            return rank
    return RANK_NOT_FOUND


@dataclass(slots=True)
class DocEvalResult:
    document: GridDoc
    pred_cells: list[tuple[GridCell, float]]
    correct_rank: int
    correct_cell: GridCell
    pred_cell: GridCell
    num_docs_in_correct_cell: int
    pred_central_point: Any
    correct_central_point: Any
    # Distances from the document's coordinate
    pred_truedist: float
    pred_degdist: float
    correct_truedist: float
    correct_degdist: float

    @classmethod
    def from_ranking(
        cls,
        grid: Grid,
        doc: GridDoc,
        pred_cells: list[tuple[GridCell, float]],
        correct: GridCell,
    ) -> DocEvalResult:
        if not pred_cells:
            raise GridStateError(f"Ranker returned no cells for {doc}")
        pred_cell = pred_cells[0][0]
        pred_point = pred_cell.get_central_point()
        correct_point = correct.get_central_point()
        return cls(
            document=doc,
            pred_cells=pred_cells,
            correct_rank=find_rank(pred_cells, correct),
            correct_cell=correct,
            pred_cell=pred_cell,
            num_docs_in_correct_cell=correct.num_docs,
            pred_central_point=pred_point,
            correct_central_point=correct_point,
            pred_truedist=grid.distance(doc.coord, pred_point),
            pred_degdist=grid.degree_distance(doc.coord, pred_point),
            correct_truedist=grid.distance(doc.coord, correct_point),
            correct_degdist=grid.degree_distance(doc.coord, correct_point),
        )


# -- Statistics --


def format_fraction(header: str, amount: float, total: float) -> str:
    if amount > total:
        logger.warn(
            f"× Something wrong: fractional quantity {amount} greater than total {total}"
        )
    if total == 0:
        percent = "indeterminate percent"
    else:
        percent = f"{100.0 * amount / total:5.2f}%"
    return f"{header} = {amount}/{total} = {percent}"


class EvalStats:
    """Instance counts plus named counters for anything else."""

    def __init__(self) -> None:
        self.total_instances = 0
        self.correct_instances = 0
        self.incorrect_instances = 0
        self.other_stats: Counter[str] = Counter()

    def record_result(self, correct: bool) -> None:
        self.total_instances += 1
        if correct:
            self.correct_instances += 1
        else:
            self.incorrect_instances += 1

    def record_other_stat(self, othertype: str) -> None:
        self.other_stats[othertype] += 1

    def format_correct_results(self) -> list[str]:
        return [format_fraction("Percent correct", self.correct_instances, self.total_instances)]

    def format_incorrect_results(self) -> list[str]:
        return [format_fraction("Percent incorrect", self.incorrect_instances, self.total_instances)]

    def format_other_stats(self) -> list[str]:
        return [f"{name} = {count}" for name, count in sorted(self.other_stats.items())]

    def format_results(self) -> list[str]:
        if self.total_instances == 0:
            logger.warn("× No instances evaluated")
            return self.format_other_stats()
        return [
            f"Number of instances = {self.total_instances}",
            *self.format_correct_results(),
            *self.format_incorrect_results(),
            *self.format_other_stats(),
        ]

    def output_results(self) -> None:
        for line in self.format_results():
            logger.mesg(line)


class RankEvalStats(EvalStats):
    """Adds partial credit: rank r <= K earns K + 1 - r."""

    def __init__(self, max_rank_for_credit: int = 10) -> None:
        super().__init__()
        self.max_rank_for_credit = max_rank_for_credit
        self.incorrect_by_exact_rank: Counter[int] = Counter()
        self.correct_by_up_to_rank: Counter[int] = Counter()
        self.incorrect_past_max_rank = 0
        self.total_credit = 0

    def record_rank(self, rank: int) -> None:
        if rank < 1:
            raise ValueError(f"Rank must be >= 1, got {rank}")
        self.record_result(rank == 1)
        k = self.max_rank_for_credit
        if rank <= k:
            self.total_credit += k + 1 - rank
            self.incorrect_by_exact_rank[rank] += 1
            for i in range(rank, k + 1):
                self.correct_by_up_to_rank[i] += 1
        else:
            self.incorrect_past_max_rank += 1

    def format_correct_results(self) -> list[str]:
        k = self.max_rank_for_credit
        lines = super().format_correct_results()
        lines.append(format_fraction(
            "Percent correct with partial credit",
            self.total_credit, k * self.total_instances,
        ))
        for i in range(2, k + 1):
            lines.append(format_fraction(
                f"  Correct is at or above rank {i}",
                self.correct_by_up_to_rank[i], self.total_instances,
            ))
        return lines

    def format_incorrect_results(self) -> list[str]:
        k = self.max_rank_for_credit
        lines = super().format_incorrect_results()
        for i in range(2, k + 1):
            lines.append(format_fraction(
                f"  Incorrect, with correct at rank {i}",
                self.incorrect_by_exact_rank[i], self.total_instances,
            ))
        lines.append(format_fraction(
            f"  Incorrect, with correct not in top {k}",
            self.incorrect_past_max_rank, self.total_instances,
        ))
        return lines


class DocEvalStats(RankEvalStats):
    """Rank statistics plus error-distance samples.

    Distances are kept in the grid's native units; kilometres are also
    shown in miles.
    """

    def __init__(
        self,
        max_rank_for_credit: int = 10,
        units: str = "km",
        degree_units: str | None = "degrees",
    ) -> None:
        super().__init__(max_rank_for_credit)
        self.units = units
        self.degree_units = degree_units
        self.true_dists: list[float] = []
        self.degree_dists: list[float] = []
        self.oracle_true_dists: list[float] = []
        self.oracle_degree_dists: list[float] = []

    def record_doc_result(self, rank: int, pred_truedist: float, pred_degdist: float) -> None:
        self.record_rank(rank)
        self.true_dists.append(pred_truedist)
        self.degree_dists.append(pred_degdist)

    def record_oracle_result(self, oracle_truedist: float, oracle_degdist: float) -> None:
        self.oracle_true_dists.append(oracle_truedist)
        self.oracle_degree_dists.append(oracle_degdist)

    def format_dist(self, dist: float) -> str:
        if self.units == "km":
            return f"{dist:.2f} km ({dist / KM_PER_MILE:.2f} miles)"
        return f"{dist:.2f} {self.units}"

    def format_incorrect_results(self) -> list[str]:
        lines = super().format_incorrect_results()
        series = [("true", self.true_dists, self.format_dist)]
        if self.degree_units is not None:
            series.append(
                ("degree", self.degree_dists, lambda d: f"{d:.2f} {self.degree_units}")
            )
        series.append(("oracle true", self.oracle_true_dists, self.format_dist))
        for label, dists, fmt in series:
            if dists:
                lines.append(f"  Mean {label} error distance = {fmt(statistics.mean(dists))}")
                lines.append(f"  Median {label} error distance = {fmt(statistics.median(dists))}")
        return lines


class GroupedDocEvalStats:
    """Overall statistics plus lazily created per-bucket statistics.

    Buckets: number of training documents in the correct cell, distance
    from the document to the correct cell's center, and distance to the
    predicted cell's center. On uniform grids distances are measured in
    fractions of the cell size; otherwise they are rounded to whole units.
    """

    def __init__(self, grid: Grid, max_rank_for_credit: int | None = None) -> None:
        self.grid = grid
        self.max_rank_for_credit = (
            max_rank_for_credit if max_rank_for_credit is not None
            else grid.params.max_rank_for_credit
        )
        self.all_document = self.create_stats()
        self.docs_by_naitr = TableByRange(NAITR_BREAKPOINTS, self.create_stats)
        self.docs_by_true_dist_to_true_center: LazyTable[float, DocEvalStats] = LazyTable(self.create_stats)
        self.docs_by_degree_dist_to_true_center: LazyTable[float, DocEvalStats] = LazyTable(self.create_stats)
        self.docs_by_true_dist_to_pred_center = TableByRange(
            DIST_FRACTIONS_FOR_ERROR_DIST, self.create_stats
        )
        self.docs_by_degree_dist_to_pred_center = TableByRange(
            DIST_FRACTIONS_FOR_ERROR_DIST, self.create_stats
        )

    def create_stats(self) -> DocEvalStats:
        return DocEvalStats(
            self.max_rank_for_credit,
            units=self.grid.distance_units,
            degree_units=self.grid.degree_units,
        )

    @property
    def degree_cell_size(self) -> float | None:
        if self.grid.cell_size is None:
            return None
        return getattr(self.grid, "degrees_per_cell", self.grid.cell_size)

    def _true_center_key(self, dist: float, size: float | None) -> float:
        if size is None:
            return float(round(dist))
        frac = dist / size
        return DIST_FRACTION_INCREMENT * math.floor(frac / DIST_FRACTION_INCREMENT)

    def record_result(self, res: DocEvalResult) -> None:
        record = (res.correct_rank, res.pred_truedist, res.pred_degdist)
        self.all_document.record_doc_result(*record)
        self.all_document.record_oracle_result(res.correct_truedist, res.correct_degdist)
        self.docs_by_naitr.get_collector(res.num_docs_in_correct_cell).record_doc_result(*record)

        size = self.grid.cell_size
        degsize = self.degree_cell_size
        self.docs_by_true_dist_to_true_center.get_collector(
            self._true_center_key(res.correct_truedist, size)
        ).record_doc_result(*record)
        if self.grid.degree_units is not None:
            self.docs_by_degree_dist_to_true_center.get_collector(
                self._true_center_key(res.correct_degdist, degsize)
            ).record_doc_result(*record)
        if size is None:
            pred_frac = float(round(res.pred_truedist))
            pred_degfrac = float(round(res.pred_degdist))
        else:
            pred_frac = res.pred_truedist / size
            pred_degfrac = res.pred_degdist / degsize
        self.docs_by_true_dist_to_pred_center.get_collector(pred_frac).record_doc_result(*record)
        if self.grid.degree_units is not None:
            self.docs_by_degree_dist_to_pred_center.get_collector(
                pred_degfrac
            ).record_doc_result(*record)

    def record_other_stat(self, othertype: str) -> None:
        self.all_document.record_other_stat(othertype)

    def _format_range_table(self, table: TableByRange, what: str, scale: float | None) -> list[str]:
        lines = []
        for lower, upper, stats in table.iter_ranges():
            lo = "-inf" if lower is None else f"{lower * (scale or 1.0):.2f}"
            hi = "inf" if upper is None else f"{upper * (scale or 1.0):.2f}"
            lines += ["", f"Results for documents where {what} is in the range [{lo},{hi}):"]
            lines += stats.format_results()
        return lines

    def _format_lazy_table(self, table: LazyTable, what: str, scale: float | None) -> list[str]:
        lines = []
        step = DIST_FRACTION_INCREMENT if scale is not None else 1.0
        for key, stats in table.items():
            lo = key * (scale or 1.0)
            hi = (key + step) * (scale or 1.0)
            lines += ["", f"Results for documents where {what} is in the range [{lo:.2f},{hi:.2f}):"]
            lines += stats.format_results()
        return lines

    def format_results(self, all_results: bool = False) -> list[str]:
        lines = ["Results for all documents:", *self.all_document.format_results()]
        if not all_results:
            return lines
        for lower, upper, stats in self.docs_by_naitr.iter_ranges():
            lo = 0 if lower is None else lower
            hi = "inf" if upper is None else upper - 1
            lines += [
                "",
                f"Results for documents where number of documents in true cell "
                f"is in the range [{lo},{hi}]:",
                *stats.format_results(),
            ]
        size = self.grid.cell_size
        degsize = self.degree_cell_size
        units = self.grid.distance_units
        lines += self._format_lazy_table(
            self.docs_by_true_dist_to_true_center,
            f"distance to center of true cell in {units}", size,
        )
        lines += self._format_range_table(
            self.docs_by_true_dist_to_pred_center,
            f"distance to center of predicted cell in {units}", size,
        )
        if self.grid.degree_units is not None:
            degunits = self.grid.degree_units
            lines += self._format_lazy_table(
                self.docs_by_degree_dist_to_true_center,
                f"distance to center of true cell in {degunits}", degsize,
            )
            lines += self._format_range_table(
                self.docs_by_degree_dist_to_pred_center,
                f"distance to center of predicted cell in {degunits}", degsize,
            )
        return lines


# -- Driver --


class RankedGridEvaluator:
    """Ranks test documents with ``ranker`` and accumulates statistics."""

    def __init__(
        self, ranker: GridRanker, stats: GroupedDocEvalStats | None = None
    ) -> None:
        self.ranker = ranker
        self.grid = ranker.grid
        self.params = self.grid.params
        self.stats = stats or GroupedDocEvalStats(self.grid)
        self.num_documents_processed = 0

    def would_skip_document(self, doc: GridDoc) -> str | None:
        if doc.coord is None:
            return SKIPPED_NO_COORD
        if doc.lm is None or doc.lm.is_empty:
            return SKIPPED_NO_WORDS
        return None

    def evaluate_document(self, doc: GridDoc) -> DocEvalResult | None:
        """Rank ``doc`` and record the outcome; None if it was skipped."""
        reason = self.would_skip_document(doc)
        if reason is not None:
            self.stats.record_other_stat(reason)
            return None
        correct = self.grid.find_best_cell_for_coord(doc.coord, create_non_recorded=True)
        if self.params.oracle_results:
            pred_cells = [(correct, 0.0)]
        else:
            pred_cells = self.ranker.return_ranked_cells(doc, correct, include_correct=True)
        res = DocEvalResult.from_ranking(self.grid, doc, pred_cells, correct)
        self.stats.record_result(res)
        if self.params.debugging("individual", doc.title):
            self.output_document_result(res)
        return res

    def output_document_result(self, res: DocEvalResult) -> None:
        doc = res.document
        units = self.grid.distance_units
        logger.mesg(f"Document {doc}:")
        logger.mesg(f"  {res.num_docs_in_correct_cell} training documents in true cell")
        logger.mesg(f"  True cell at rank: {res.correct_rank}")
        logger.mesg(f"  True cell: {res.correct_cell.shortstr()}")
        for line in self.grid.format_ranking(res.pred_cells, res.correct_cell, limit=5):
            logger.mesg(f"  {line}")
        logger.mesg(
            f"  Distance {res.pred_truedist:.2f} {units} to predicted cell center "
            f"at {res.pred_central_point}"
        )
        logger.mesg(
            f"  Distance {res.correct_truedist:.2f} {units} to true cell center "
            f"at {res.correct_central_point}"
        )

    def select_documents(self, docs: Iterable[GridDoc]) -> list[GridDoc]:
        """Apply the skip-initial, every-nth and max-count options."""
        params = self.params
        selected = []
        for i, doc in enumerate(docs):
            if i < params.skip_initial_test_docs:
                continue
            if (i - params.skip_initial_test_docs) % params.every_nth_test_doc != 0:
                continue
            if params.num_test_docs and len(selected) >= params.num_test_docs:
                break
            selected.append(doc)
        return selected

    def evaluate_documents(
        self, docs: Iterable[GridDoc], initialize: bool = True
    ) -> list[DocEvalResult]:
        """Evaluate a stream of test documents.

        With ``initialize`` the ranker's one-time pass runs over the
        selected documents before any of them is ranked.
        """
        selected = self.select_documents(docs)
        if initialize:
            self.ranker.initialize(
                doc for doc in selected if self.would_skip_document(doc) is None
            )
        results = []
        for doc in selected:
            self.num_documents_processed += 1
            res = self.evaluate_document(doc)
            if res is not None:
                results.append(res)
        return results

    def format_results(self, all_results: bool = False) -> list[str]:
        return self.stats.format_results(all_results)

    def output_results(self, all_results: bool = False) -> None:
        logger.note(f"> Results for {self.ranker.name}:")
        for line in self.format_results(all_results):
            logger.mesg(line)
        logger.success(f"+ Evaluated {self.num_documents_processed} documents")
