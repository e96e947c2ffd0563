"""Exceptions raised while loading or reconciling city tables."""
from __future__ import annotations


class MatchingError(Exception):
    pass


class MalformedInput(MatchingError):
    """A single input row cannot become a record.

    Raised per row and caught by the loader; the row is kept as an ``error``
    residual instead of aborting the batch.
    """

    def __init__(self, message: str, row_number: int | None = None, record_id: str | None = None) -> None:
        super().__init__(message)
        self.row_number = row_number
        self.record_id = record_id


class AmbiguousOverride(MatchingError):
    """The hand-written override table is inconsistent and must be fixed."""


class ThresholdMisconfiguration(MatchingError, ValueError):
    """Similarity threshold outside the range of the selected scorer."""
