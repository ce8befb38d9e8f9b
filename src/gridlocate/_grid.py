"""Grid: partition of coordinate space into cells."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Hashable, Iterable, Sequence

from tclogger import logger

from ._config import GridLocateParams
from ._errors import GridStateError

if TYPE_CHECKING:
    from ._cell import GridCell
    from ._document import DocumentFactory, GridDoc
    from ._types import RawDocument


class Grid:
    """Base class for grids whose cells are keyed by a hashable index.

    Subclasses supply the coordinate-to-index mapping, cell creation and
    the distance function. Cells are created lazily when the first
    training document lands in them; coordinates outside the grid's range
    map to no recorded cell.
    """

    distance_units = "units"
    # Set where degree_distance differs from distance
    degree_units: str | None = None

    def __init__(
        self,
        docfact: DocumentFactory,
        params: GridLocateParams | None = None,
    ) -> None:
        self.docfact = docfact
        self.params = params or GridLocateParams()
        self.cells: dict[Hashable, GridCell] = {}
        self.total_num_docs = 0
        self.num_non_empty_cells = 0
        self.total_prior_weighting = 0.0
        self.num_docs_out_of_range = 0
        self.all_cells_computed = False
        self._nonempty: list[GridCell] = []

    # -- Shape, supplied by concrete grids --

    def coord_to_index(self, coord: Any) -> Hashable:
        raise NotImplementedError

    def index_in_range(self, index: Hashable) -> bool:
        raise NotImplementedError

    def create_cell(self, index: Hashable) -> GridCell:
        raise NotImplementedError

    @property
    def total_num_cells(self) -> int:
        raise NotImplementedError

    def coord_to_components(self, coord: Any) -> Sequence[float]:
        raise NotImplementedError

    def components_to_coord(self, components: Sequence[float]) -> Any:
        raise NotImplementedError

    def distance(self, a: Any, b: Any) -> float:
        raise NotImplementedError

    def degree_distance(self, a: Any, b: Any) -> float:
        return self.distance(a, b)

    @property
    def cell_size(self) -> float | None:
        """Size of a cell in distance units, or None for non-uniform grids."""
        return None

    def get_subdivided_cells(self, coarse_cell: GridCell) -> list[GridCell]:
        """Non-empty cells of this grid whose centers lie in ``coarse_cell``."""
        return [
            cell for cell in self.iter_nonempty_cells()
            if coarse_cell.contains(cell.get_true_center())
        ]

    # -- Population --

    def add_document_to_grid(self, doc: GridDoc) -> None:
        if self.all_cells_computed:
            raise GridStateError(f"Can't add {doc} to a finished grid")
        index = self.coord_to_index(doc.coord)
        if not self.index_in_range(index):
            self.num_docs_out_of_range += 1
            return
        cell = self.cells.get(index)
        if cell is None:
            cell = self.create_cell(index)
            self.cells[index] = cell
        cell.add_document(doc)

    def add_training_documents_to_grid(self, raws: Iterable[RawDocument]) -> None:
        if self.all_cells_computed:
            raise GridStateError("Can't add documents to a finished grid")
        for doc in self.docfact.raw_documents_to_documents(raws, note_globally=True):
            self.add_document_to_grid(doc)

    def initialize_cells(self) -> None:
        for cell in self.cells.values():
            cell.finish()

    def finish(self) -> None:
        if self.all_cells_computed:
            raise GridStateError("Grid is already finished")
        lm_factory = self.docfact.lm_factory
        if not lm_factory.global_finished:
            logger.note("> Finishing global distribution ...")
            lm_factory.finish_global_distribution()
            self.docfact.finish_document_loading()
        self.initialize_cells()
        self.all_cells_computed = True
        self._nonempty = [
            self.cells[index] for index in sorted(self.cells)
            if self.cells[index].num_docs > 0
        ]
        self.num_non_empty_cells = len(self._nonempty)
        self.total_num_docs = sum(cell.num_docs for cell in self._nonempty)
        self.total_prior_weighting = sum(
            cell.prior_weighting for cell in self._nonempty
        )
        logger.note(
            f"> Grid finished: {self.num_non_empty_cells} non-empty cells "
            f"of {self.total_num_cells}, {self.total_num_docs} documents"
        )
        if self.num_docs_out_of_range:
            logger.warn(
                f"× {self.num_docs_out_of_range} training documents "
                f"outside the grid"
            )

    # -- Lookup and iteration --

    def find_best_cell_for_coord(
        self, coord: Any, create_non_recorded: bool = False
    ) -> GridCell | None:
        """Cell containing ``coord``.

        With ``create_non_recorded``, a coordinate with no recorded cell
        gets a transient empty cell usable for distances only; it is never
        added to the grid.
        """
        index = self.coord_to_index(coord)
        cell = self.cells.get(index)
        if cell is not None or not create_non_recorded:
            return cell
        cell = self.create_cell(index)
        if self.docfact.lm_factory.global_finished:
            cell.finish()
        return cell

    def iter_nonempty_cells(self) -> list[GridCell]:
        if not self.all_cells_computed:
            raise GridStateError("Grid must be finished before iterating cells")
        return list(self._nonempty)

    def iter_nonempty_cells_including(
        self, correct: GridCell | None = None, include_correct: bool = False
    ) -> list[GridCell]:
        """Non-empty cells, with ``correct`` appended if requested and absent."""
        cells = self.iter_nonempty_cells()
        if include_correct and correct is not None:
            if not any(cell is correct for cell in cells):
                cells.append(correct)
        return cells

    # -- Display --

    def format_ranking(
        self,
        pred_cells: Sequence[tuple[GridCell, float]],
        correct: GridCell | None = None,
        limit: int | None = None,
    ) -> list[str]:
        lines = []
        shown = pred_cells if limit is None else pred_cells[:limit]
        for rank, (cell, score) in enumerate(shown, start=1):
            mark = "*" if cell is correct else " "
            lines.append(
                f"{mark} #{rank:<4d} {score:12.6f}  {cell.shortstr()} "
                f"({cell.num_docs} docs)"
            )
        return lines
