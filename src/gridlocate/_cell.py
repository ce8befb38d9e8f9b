"""GridCell: one region of coordinate space with a combined language model."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ._errors import DataError, GridStateError
from ._types import TRAINING

if TYPE_CHECKING:
    from ._document import GridDoc
    from ._grid import Grid


class GridCell:
    """A cell of a ``Grid``.

    Training documents are added one at a time; ``finish`` is then called
    exactly once, after which the combined language model is frozen and
    the cell may be ranked. The grid is a back-reference, not an owner.
    """

    __slots__ = (
        "grid", "lm", "num_docs", "salience", "most_popular_document",
        "_mostpopdoc_salience", "_centroid_sum", "_finished",
    )

    def __init__(self, grid: Grid) -> None:
        self.grid = grid
        self.lm = grid.docfact.lm_factory.create_lang_model()
        self.num_docs = 0
        self.salience = 0.0
        self.most_popular_document: GridDoc | None = None
        self._mostpopdoc_salience = 0.0
        self._centroid_sum: list[float] | None = None
        self._finished = False

    # -- Geometry, supplied by concrete cells --

    def get_true_center(self) -> Any:
        raise NotImplementedError

    def describe_location(self) -> str:
        raise NotImplementedError

    def describe_indices(self) -> str:
        raise NotImplementedError

    def contains(self, coord: Any) -> bool:
        raise NotImplementedError

    # -- Centers --

    def get_centroid(self) -> Any:
        if self.num_docs == 0 or self._centroid_sum is None:
            return self.get_true_center()
        return self.grid.components_to_coord(
            [x / self.num_docs for x in self._centroid_sum]
        )

    def get_central_point(self) -> Any:
        """Point used for distances: centroid, or true center if configured
        or if the cell has no documents."""
        if self.num_docs == 0 or self.grid.params.center_method == "center":
            return self.get_true_center()
        return self.get_centroid()

    @property
    def prior_weighting(self) -> float:
        if self.grid.params.prior_method == "salience":
            return self.salience
        return float(self.num_docs)

    @property
    def finished(self) -> bool:
        return self._finished

    # -- Population --

    def add_document(self, doc: GridDoc) -> None:
        if self._finished:
            raise GridStateError(f"Can't add {doc} to finished cell {self.shortstr()}")
        if doc.split != TRAINING:
            raise DataError(
                f"Only training documents can be added to a cell, "
                f"got {doc} in split {doc.split!r}"
            )
        if doc.coord is None:
            raise DataError(f"Document {doc} has no coordinate")
        self.num_docs += 1
        components = self.grid.coord_to_components(doc.coord)
        if self._centroid_sum is None:
            self._centroid_sum = list(components)
        else:
            for i, x in enumerate(components):
                self._centroid_sum[i] += x
        self.lm.add_word_distribution(doc.lm, 1.0)
        salience = doc.salience or 0.0
        self.salience += salience
        if (
            self.most_popular_document is None
            or salience > self._mostpopdoc_salience
        ):
            self.most_popular_document = doc
            self._mostpopdoc_salience = salience

    def finish(self) -> None:
        if self._finished:
            raise GridStateError(f"Cell {self.shortstr()} is already finished")
        self.lm.finish_before_global()
        self.lm.finish_after_global()
        self._finished = True

    # -- Display --

    def shortstr(self) -> str:
        s = f"Cell {self.describe_location()}"
        if self.most_popular_document is not None:
            s += f" (most popular: {self.most_popular_document.title})"
        return s

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "location": self.describe_location(),
            "indices": self.describe_indices(),
            "num_docs": self.num_docs,
            "salience": self.salience,
            "central_point": str(self.get_central_point()),
        }
        if self.most_popular_document is not None:
            row["most_popular_document"] = self.most_popular_document.title
        return row

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.describe_indices()}, "
            f"num_docs={self.num_docs})"
        )
