"""A one-dimensional grid over time, in years."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

from ._cell import GridCell
from ._errors import ConfigError
from ._grid import Grid

if TYPE_CHECKING:
    from ._config import GridLocateParams
    from ._document import DocumentFactory


class TimeCell(GridCell):
    __slots__ = ("index",)

    grid: TimeGrid

    def __init__(self, grid: TimeGrid, index: int) -> None:
        super().__init__(grid)
        self.index = index

    @property
    def start(self) -> float:
        return self.grid.start + self.index * self.grid.years_per_cell

    @property
    def end(self) -> float:
        return min(self.start + self.grid.years_per_cell, self.grid.end)

    def get_true_center(self) -> float:
        return (self.start + self.end) / 2.0

    def contains(self, coord: float) -> bool:
        return self.grid.coord_to_index(coord) == self.index

    def describe_location(self) -> str:
        return f"{self.start:g}-{self.end:g}"

    def describe_indices(self) -> str:
        return str(self.index)


class TimeGrid(Grid):
    """Cells of ``years_per_cell`` years covering ``[start, end]``."""

    distance_units = "years"

    def __init__(
        self,
        docfact: DocumentFactory,
        start: float,
        end: float,
        years_per_cell: float,
        params: GridLocateParams | None = None,
    ) -> None:
        super().__init__(docfact, params)
        if years_per_cell <= 0:
            raise ConfigError(f"years_per_cell must be > 0, got {years_per_cell}")
        if end <= start:
            raise ConfigError(f"Empty time range {start}..{end}")
        self.start = float(start)
        self.end = float(end)
        self.years_per_cell = float(years_per_cell)
        self.num_cells = math.ceil((self.end - self.start) / self.years_per_cell)

    @property
    def total_num_cells(self) -> int:
        return self.num_cells

    @property
    def cell_size(self) -> float:
        return self.years_per_cell

    def coord_to_index(self, coord: float) -> int:
        if coord == self.end:
            return self.num_cells - 1
        return math.floor((coord - self.start) / self.years_per_cell)

    def index_in_range(self, index: int) -> bool:
        return 0 <= index < self.num_cells

    def create_cell(self, index: int) -> TimeCell:
        return TimeCell(self, index)

    def coord_to_components(self, coord: float) -> Sequence[float]:
        return (float(coord),)

    def components_to_coord(self, components: Sequence[float]) -> float:
        return components[0]

    def distance(self, a: float, b: float) -> float:
        return abs(a - b)
