"""gridlocate: rank the cells of a geographic or temporal grid for a document."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from ._config import DEBUG_FLAGS, GridLocateParams
from ._document import DocumentFactory, GridDoc
from ._errors import (
    ConfigError,
    DataError,
    ExternalScorerError,
    GridLocateError,
    GridStateError,
    NumericError,
    StoreChecksumError,
    StoreError,
    StoreVersionError,
    UnsupportedModelError,
)
from ._langmodel import LangModelFactory, UnigramLangModel
from ._ranges import LazyTable, TableByRange
from ._sphere import KM_PER_MILE, MultiRegularGrid, SphereCoord, degree_dist, spheredist
from ._stop_words import STOP_WORDS
from ._temporal import TimeGrid
from ._types import DEV, TEST, TRAINING, RawDocument

if TYPE_CHECKING:
    from ._grid import Grid

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "build_sphere_grid",
    "ConfigError",
    "DataError",
    "DEBUG_FLAGS",
    "DEV",
    "DocumentFactory",
    "ExternalScorerError",
    "GridDoc",
    "GridLocateError",
    "GridLocateParams",
    "GridStateError",
    "KM_PER_MILE",
    "LangModelFactory",
    "LazyTable",
    "MultiRegularGrid",
    "NumericError",
    "RawDocument",
    "SphereCoord",
    "STOP_WORDS",
    "StoreChecksumError",
    "StoreError",
    "StoreVersionError",
    "TableByRange",
    "TEST",
    "TimeGrid",
    "TRAINING",
    "UnigramLangModel",
    "UnsupportedModelError",
    "degree_dist",
    "spheredist",
    # Deferred, see __getattr__
    "GridRanker",
    "GridRerankerTrainer",
    "RankedGridEvaluator",
    "RankerKind",
    "Tokenizer",
    "create_ranker",
    "load_classifier",
    "save_classifier",
]


def build_sphere_grid(
    raws: Iterable[RawDocument],
    degrees_per_cell: float,
    bounds: tuple[float, float, float, float] | None = None,
    params: GridLocateParams | None = None,
) -> "Grid":
    """Build and finish a ``MultiRegularGrid`` from training documents.

    Args:
        raws: Raw documents; only training documents with coordinates are used.
        degrees_per_cell: Cell size in degrees of latitude and longitude.
        bounds: ``(min_lat, min_long, max_lat, max_long)``, whole Earth if None.
    """
    params = params or GridLocateParams()
    docfact = DocumentFactory(LangModelFactory(params.dirichlet_factor))
    grid = MultiRegularGrid(docfact, degrees_per_cell, bounds=bounds, params=params)
    grid.add_training_documents_to_grid(raws)
    grid.finish()
    return grid


_DEFERRED = {
    "GridRanker": "._rankers",
    "RankerKind": "._rankers",
    "create_ranker": "._rankers",
    "GridRerankerTrainer": "._reranker",
    "RankedGridEvaluator": "._evaluation",
    "Tokenizer": "._tokenizer",
    "load_classifier": "._store",
    "save_classifier": "._store",
}


# Deferred imports keep ahocorasick, Stemmer and msgpack off the
# import path until a tokenizer or store is actually used.
def __getattr__(name: str):
    module = _DEFERRED.get(name)
    if module is not None:
        from importlib import import_module
        return getattr(import_module(module, __name__), name)
    raise AttributeError(f"module 'gridlocate' has no attribute {name!r}")
