"""Shared fixtures for gridlocate tests.

The standard grid covers lat/long [0, 4] x [0, 4] with 2-degree cells:

    (0,0) paris-a, paris-b    (0,1) tokyo-a
    (1,0) nyc-a, nyc-b        (1,1) empty
"""

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

BOUNDS = (0.0, 0.0, 4.0, 4.0)

TRAINING_DOCS = [
    RawDocument("paris-a", TRAINING, coord=SphereCoord(0.5, 0.5),
                counts={"paris": 10, "wine": 2}, salience=5.0),
    RawDocument("paris-b", TRAINING, coord=SphereCoord(1.5, 1.5),
                counts={"paris": 8, "cheese": 3}, salience=1.0),
    RawDocument("tokyo-a", TRAINING, coord=SphereCoord(0.5, 3.0),
                counts={"tokyo": 10, "sushi": 4}, salience=20.0),
    RawDocument("nyc-a", TRAINING, coord=SphereCoord(3.0, 0.5),
                counts={"york": 10, "pizza": 5}, salience=3.0),
    RawDocument("nyc-b", TRAINING, coord=SphereCoord(3.5, 1.0),
                counts={"york": 6, "bagel": 2}, salience=2.0),
]


def build_grid(params=None, degrees_per_cell=2.0, raws=TRAINING_DOCS):
    params = params or GridLocateParams()
    docfact = DocumentFactory(LangModelFactory(params.dirichlet_factor))
    grid = MultiRegularGrid(docfact, degrees_per_cell, bounds=BOUNDS, params=params)
    grid.add_training_documents_to_grid(raws)
    grid.finish()
    return grid


@pytest.fixture
def make_grid():
    """Factory for finished grids over the standard training documents."""
    return build_grid


@pytest.fixture
def grid():
    return build_grid()


@pytest.fixture
def make_doc():
    """Factory for documents created against a finished grid."""

    def _make(grid, title, lat, long, counts, split=TEST):
        coord = None if lat is None else SphereCoord(lat, long)
        raw = RawDocument(title, split, coord=coord, counts=counts)
        return grid.docfact.raw_document_to_document(raw)

    return _make


@pytest.fixture
def training_docs(grid):
    """The standard training documents as finished ``GridDoc`` objects."""
    return [grid.docfact.raw_document_to_document(raw) for raw in TRAINING_DOCS]


@pytest.fixture
def paris_doc(grid, make_doc):
    return make_doc(grid, "paris-test", 1.0, 1.0, {"paris": 3})


@pytest.fixture
def tokyo_doc(grid, make_doc):
    return make_doc(grid, "tokyo-test", 1.0, 3.0, {"tokyo": 2, "sushi": 1})


def cell_at(grid, lat, long):
    return grid.find_best_cell_for_coord(SphereCoord(lat, long))


@pytest.fixture
def cell():
    """Lookup of the recorded cell containing a coordinate."""
    return cell_at
