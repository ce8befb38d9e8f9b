"""Latitude/longitude coordinates and a regular grid over the sphere."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from ._cell import GridCell
from ._errors import ConfigError
from ._grid import Grid

if TYPE_CHECKING:
    from ._config import GridLocateParams
    from ._document import DocumentFactory

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.609344
KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180.0

WHOLE_EARTH = (-90.0, -180.0, 90.0, 180.0)


@dataclass(slots=True, frozen=True)
class SphereCoord:
    lat: float
    long: float

    def __str__(self) -> str:
        return f"({self.lat:.2f},{self.long:.2f})"


def spheredist(a: SphereCoord, b: SphereCoord) -> float:
    """Great-circle distance in km (haversine)."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlong = math.radians(b.long - a.long)
    h = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlong / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def degree_dist(a: SphereCoord, b: SphereCoord) -> float:
    """Euclidean distance in degrees, taking the short way around in longitude."""
    dlat = a.lat - b.lat
    dlong = abs(a.long - b.long) % 360.0
    if dlong > 180.0:
        dlong = 360.0 - dlong
    return math.hypot(dlat, dlong)


class RectangularCell(GridCell):
    """Cell covering ``degrees_per_cell`` of latitude and longitude."""

    __slots__ = ("index",)

    grid: MultiRegularGrid

    def __init__(self, grid: MultiRegularGrid, index: tuple[int, int]) -> None:
        super().__init__(grid)
        self.index = index

    def get_southwest_coord(self) -> SphereCoord:
        min_lat, min_long, _, _ = self.grid.bounds
        dpc = self.grid.degrees_per_cell
        return SphereCoord(min_lat + self.index[0] * dpc, min_long + self.index[1] * dpc)

    def get_northeast_coord(self) -> SphereCoord:
        _, _, max_lat, max_long = self.grid.bounds
        dpc = self.grid.degrees_per_cell
        sw = self.get_southwest_coord()
        return SphereCoord(min(sw.lat + dpc, max_lat), min(sw.long + dpc, max_long))

    def get_true_center(self) -> SphereCoord:
        sw = self.get_southwest_coord()
        ne = self.get_northeast_coord()
        return SphereCoord((sw.lat + ne.lat) / 2.0, (sw.long + ne.long) / 2.0)

    def contains(self, coord: SphereCoord) -> bool:
        return self.grid.coord_to_index(coord) == self.index

    def describe_location(self) -> str:
        return f"{self.get_southwest_coord()}:{self.get_northeast_coord()}"

    def describe_indices(self) -> str:
        return f"{self.index[0]},{self.index[1]}"


class MultiRegularGrid(Grid):
    """Regular tiling of a latitude/longitude bounding box.

    ``bounds`` is ``(min_lat, min_long, max_lat, max_long)`` and defaults
    to the whole Earth. Index ``(i, j)`` counts cells north from
    ``min_lat`` and east from ``min_long``.
    """

    distance_units = "km"
    degree_units = "degrees"

    def __init__(
        self,
        docfact: DocumentFactory,
        degrees_per_cell: float,
        bounds: tuple[float, float, float, float] | None = None,
        params: GridLocateParams | None = None,
    ) -> None:
        super().__init__(docfact, params)
        if degrees_per_cell <= 0:
            raise ConfigError(f"degrees_per_cell must be > 0, got {degrees_per_cell}")
        self.bounds = tuple(float(x) for x in (bounds or WHOLE_EARTH))
        min_lat, min_long, max_lat, max_long = self.bounds
        if max_lat <= min_lat or max_long <= min_long:
            raise ConfigError(f"Empty grid bounds {self.bounds}")
        self.degrees_per_cell = float(degrees_per_cell)
        self.num_lat_cells = math.ceil((max_lat - min_lat) / self.degrees_per_cell)
        self.num_long_cells = math.ceil((max_long - min_long) / self.degrees_per_cell)

    @property
    def total_num_cells(self) -> int:
        return self.num_lat_cells * self.num_long_cells

    @property
    def cell_size(self) -> float:
        return self.degrees_per_cell * KM_PER_DEGREE

    def coord_to_index(self, coord: SphereCoord) -> tuple[int, int]:
        min_lat, min_long, max_lat, max_long = self.bounds
        i = math.floor((coord.lat - min_lat) / self.degrees_per_cell)
        j = math.floor((coord.long - min_long) / self.degrees_per_cell)
        # The northern and eastern edges belong to the last row and column
        if coord.lat == max_lat:
            i = self.num_lat_cells - 1
        if coord.long == max_long:
            j = self.num_long_cells - 1
        return (i, j)

    def index_in_range(self, index: tuple[int, int]) -> bool:
        i, j = index
        return 0 <= i < self.num_lat_cells and 0 <= j < self.num_long_cells

    def create_cell(self, index: tuple[int, int]) -> RectangularCell:
        return RectangularCell(self, index)

    def coord_to_components(self, coord: SphereCoord) -> Sequence[float]:
        return (coord.lat, coord.long)

    def components_to_coord(self, components: Sequence[float]) -> SphereCoord:
        return SphereCoord(components[0], components[1])

    def distance(self, a: SphereCoord, b: SphereCoord) -> float:
        return spheredist(a, b)

    def degree_distance(self, a: SphereCoord, b: SphereCoord) -> float:
        return degree_dist(a, b)
