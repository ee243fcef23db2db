"""
Error taxonomy for the stock count engine.

Two families live here:
- IssueCode: problems that are *reported* (validation issues, merge warnings).
  These never raise; they travel inside result objects.
- Exceptions: problems that abort an operation (malformed input, illegal
  lifecycle transitions, persistence failures).
"""

from enum import Enum


class IssueCode(Enum):
    """Machine-readable code attached to every reported issue."""

    # Blocking validation errors
    EMPTY_BATCH = "EmptyBatch"
    MISSING_IDENTIFIER = "MissingIdentifier"
    NEGATIVE_QUANTITY = "NegativeQuantity"
    DUPLICATE_IDENTIFIER = "DuplicateIdentifier"
    UNKNOWN_CATALOG_ENTRY = "UnknownCatalogEntry"

    # Non-blocking validation warnings
    HIGH_QUANTITY = "HighQuantity"
    HIGH_VARIANCE_WHILE_CONTROLLED = "HighVarianceWhileControlled"
    MISSING_NAME = "MissingName"
    CATALOG_UNAVAILABLE = "CatalogUnavailable"

    # Merge warnings
    NO_PARTIAL_MATCHES = "NoPartialMatches"


class StockCountError(Exception):
    """Base class for every error raised by the engine."""


class MalformedInputError(StockCountError):
    """Input cannot be analysed at all; no partial result may be shown."""


class MissingColumnsError(MalformedInputError):
    """Required columns could not be located by header or by offset."""

    def __init__(self, layout: str, missing: list[str]):
        self.layout = layout
        self.missing = list(missing)
        super().__init__(
            f"{layout}: required column(s) not found: {', '.join(self.missing)}"
        )


class LabMismatchError(MalformedInputError):
    """A cyclic sheet belongs to a different laboratory than the worksheet."""

    def __init__(self, expected: str, found: str | None):
        self.expected = expected
        self.found = found
        if found:
            message = f'File belongs to "{found}", but worksheet is "{expected}"'
        else:
            message = "Could not identify the laboratory in the file"
        super().__init__(message)


class DuplicateIdentifierError(MalformedInputError):
    """The complete (branch) file lists the same identifier more than once."""

    def __init__(self, identifiers: list[str]):
        self.identifiers = sorted(identifiers)
        super().__init__(
            f"Duplicate identifiers in complete file: {', '.join(self.identifiers)}"
        )


class TransitionError(StockCountError):
    """A lifecycle transition is not allowed from the item's current status."""


class FinalizeError(StockCountError):
    """Finalize guard failed; no item was transitioned."""

    def __init__(self, group: str, missing: list[str]):
        self.group = group
        self.missing = list(missing)
        super().__init__(
            f"Cannot finalize {group}: missing {' and '.join(self.missing)} adjustment id"
        )


class PersistenceError(StockCountError):
    """Transient failure of the persistence collaborator (retryable)."""


class CatalogUnavailableError(StockCountError):
    """The catalog collaborator could not answer a lookup."""
