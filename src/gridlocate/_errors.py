"""gridlocate error types."""


class GridLocateError(Exception):
    """Base error for all gridlocate failures."""


class ConfigError(GridLocateError):
    """Unrecognized strategy name or option out of range."""


class GridStateError(GridLocateError):
    """Lifecycle violation, e.g. finishing a grid twice."""


class DataError(GridLocateError):
    """A document violates the contract expected by the caller."""


class UnsupportedModelError(DataError):
    """Operation defined only for unigram language models."""


class NumericError(GridLocateError):
    """Score is NaN or outside its mathematically possible range."""


class ExternalScorerError(GridLocateError):
    """External batch classifier failed or returned malformed output."""


class StoreError(GridLocateError):
    """Saved classifier could not be read."""


class StoreVersionError(StoreError):
    """Manifest version mismatch."""


class StoreChecksumError(StoreError):
    """File checksum verification failed."""
