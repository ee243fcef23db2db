"""
Two-source merge for collaborative counts.

A subset team counts some products ("partial") while the branch counts
everything on its own ("complete"). The merge produces three views:
- partial: rows the subset team touched, with the subset team's count
- branch:  rows only the branch counted, with the branch count
- general: every complete row, with branch + partial counts combined
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Iterable

from .errors import DuplicateIdentifierError, IssueCode
from .models import InventoryRecord
from .parsers import normalize_identifier

LOGGER = logging.getLogger(__name__)


class MergeView(Enum):
    """Which partitioned output a record belongs to."""

    PARTIAL = "partial"
    BRANCH = "branch"
    GENERAL = "general"


@dataclass(frozen=True)
class MergeWarning:
    """Non-fatal merge problem the caller should show to the user."""

    code: IssueCode
    message: str


@dataclass
class MergeResult:
    """The three views plus everything needed to explain them."""

    general: list[InventoryRecord] = field(default_factory=list)
    partial: list[InventoryRecord] = field(default_factory=list)
    branch: list[InventoryRecord] = field(default_factory=list)
    partial_totals: dict[str, int] = field(default_factory=dict)
    dropped: list[str] = field(default_factory=list)
    warnings: list[MergeWarning] = field(default_factory=list)

    def view(self, which: MergeView) -> list[InventoryRecord]:
        return {
            MergeView.GENERAL: self.general,
            MergeView.PARTIAL: self.partial,
            MergeView.BRANCH: self.branch,
        }[which]

    @property
    def match_rate(self) -> float:
        if not self.partial_totals:
            return 0
        return len(self.partial) / len(self.partial_totals)

    def summary(self) -> dict:
        return {
            "general": len(self.general),
            "partial": len(self.partial),
            "branch": len(self.branch),
            "dropped": len(self.dropped),
            "match_rate": f"{self.match_rate:.1%}",
        }


def sum_partial_counts(rows: Iterable[tuple[object, int]]) -> dict[str, int]:
    """Sum quantities per normalized identifier. Repeated submissions add up."""
    totals: dict[str, int] = {}
    for raw_identifier, qty in rows:
        identifier = normalize_identifier(raw_identifier)
        if not identifier:
            continue
        totals[identifier] = totals.get(identifier, 0) + int(qty or 0)
    return totals


def merge_counts(
    partial_rows: Iterable[tuple[object, int]],
    complete_rows: Iterable[InventoryRecord],
) -> MergeResult:
    """
    Merge a partial count into a complete branch count.

    Args:
        partial_rows: (identifier, quantity) pairs; duplicates are summed
        complete_rows: records whose counted_quantity is the branch count

    Raises DuplicateIdentifierError if the complete set repeats an identifier.
    Partial identifiers with no complete row are dropped (no system quantity
    or cost to attach them to) and listed in MergeResult.dropped.
    """
    partial_totals = sum_partial_counts(partial_rows)

    complete = []
    for record in complete_rows:
        identifier = normalize_identifier(record.identifier)
        if not identifier:
            continue
        complete.append((identifier, record))

    dupes = [ean for ean, n in Counter(ean for ean, _ in complete).items() if n > 1]
    if dupes:
        raise DuplicateIdentifierError(dupes)

    result = MergeResult(partial_totals=partial_totals)
    seen: set[str] = set()

    for identifier, record in complete:
        seen.add(identifier)
        branch_qty = int(record.counted_quantity or 0)
        base = dict(
            identifier=identifier,
            name=record.name,
            system_quantity=record.system_quantity,
            unit_cost=record.unit_cost,
            category=record.category,
            sale_price=record.sale_price,
        )
        partial_qty = partial_totals.get(identifier)

        result.general.append(
            InventoryRecord(counted_quantity=branch_qty + (partial_qty or 0), **base)
        )
        if partial_qty is not None:
            result.partial.append(InventoryRecord(counted_quantity=partial_qty, **base))
        else:
            result.branch.append(InventoryRecord(counted_quantity=branch_qty, **base))

    result.dropped = [ean for ean in partial_totals if ean not in seen]
    if result.dropped:
        LOGGER.warning(
            "%d partial identifier(s) absent from the complete file were dropped: %s",
            len(result.dropped),
            ", ".join(result.dropped[:10]),
        )

    if not result.partial:
        message = (
            "Partial file is empty"
            if not partial_totals
            else "No partial identifiers matched the complete file; check the identifier format"
        )
        LOGGER.warning(message)
        result.warnings.append(MergeWarning(IssueCode.NO_PARTIAL_MATCHES, message))

    return result
