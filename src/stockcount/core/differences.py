"""
Variance and monetary impact of counted records.

compute_diff is pure and cheap: it is called on every edit, sort and
aggregation instead of reading any stored difference.
"""

from typing import Iterable, NamedTuple
from pydantic import BaseModel, Field

from .models import InventoryRecord, clamp_cost


class Difference(NamedTuple):
    """Counted-minus-system quantity and its value. Both None when uncounted."""

    quantity: int | None
    value: float | None


def compute_diff(record: InventoryRecord) -> Difference:
    """Derive diff_qty and diff_value from the record's current fields."""
    if record.counted_quantity is None:
        return Difference(None, None)
    cost = clamp_cost(record.unit_cost, record.identifier)
    qty = int(record.counted_quantity) - int(record.system_quantity)
    return Difference(qty, qty * cost)


def rank_by_impact(records: Iterable[InventoryRecord]) -> list[InventoryRecord]:
    """Sort by absolute monetary impact, highest first. Uncounted records go last."""

    def key(record: InventoryRecord) -> float:
        value = compute_diff(record).value
        return -abs(value) if value is not None else 1.0

    return sorted(records, key=key)


class DiscrepancyLine(BaseModel):
    """One product with a non-zero difference."""

    identifier: str
    name: str
    system_quantity: int
    counted_quantity: int
    unit_cost: float
    sale_price: float | None = None
    diff_qty: int
    diff_value: float


class CountAnalysis(BaseModel):
    """Summary of a single-count import."""

    total_products: int = Field(description="Rows with an identifier and a name")
    counted_products: int = Field(description="Rows with a counted quantity")
    shortages: list[DiscrepancyLine] = Field(description="All rows with diff_qty < 0")
    surpluses: list[DiscrepancyLine] = Field(description="All rows with diff_qty > 0")
    top_shortages_by_value: list[DiscrepancyLine]
    top_surpluses_by_value: list[DiscrepancyLine]
    total_shortage_value: float = Field(description="Magnitude, always >= 0")
    total_surplus_value: float
    total_shortage_units: int = Field(description="Magnitude, always >= 0")
    total_surplus_units: int
    no_difference_count: int = Field(description="Counted rows with diff_qty == 0")
    inventory_accuracy: float = Field(description="Percent of counted rows with no difference")
    net_discrepancy_value: float
    net_discrepancy_units: int
    total_scanned_units: int


def _line(record: InventoryRecord, diff: Difference) -> DiscrepancyLine:
    return DiscrepancyLine(
        identifier=record.identifier,
        name=record.name,
        system_quantity=record.system_quantity,
        counted_quantity=record.counted_quantity,
        unit_cost=record.unit_cost,
        sale_price=record.sale_price,
        diff_qty=diff.quantity,
        diff_value=diff.value,
    )


def analyze_count(records: Iterable[InventoryRecord], top_n: int = 10) -> CountAnalysis:
    """
    Summarize shortages, surpluses and accuracy of a single-count import.

    Uncounted rows are part of total_products but never of the
    no-difference tally or the accuracy ratio.
    """
    records = list(records)
    shortages: list[DiscrepancyLine] = []
    surpluses: list[DiscrepancyLine] = []
    no_difference = 0
    counted = 0
    scanned = 0

    for record in records:
        diff = compute_diff(record)
        if diff.quantity is None:
            continue
        counted += 1
        scanned += record.counted_quantity
        if diff.quantity < 0:
            shortages.append(_line(record, diff))
        elif diff.quantity > 0:
            surpluses.append(_line(record, diff))
        else:
            no_difference += 1

    shortage_value = sum(line.diff_value for line in shortages)
    surplus_value = sum(line.diff_value for line in surpluses)
    shortage_units = sum(line.diff_qty for line in shortages)
    surplus_units = sum(line.diff_qty for line in surpluses)

    return CountAnalysis(
        total_products=len(records),
        counted_products=counted,
        shortages=shortages,
        surpluses=surpluses,
        top_shortages_by_value=sorted(shortages, key=lambda l: l.diff_value)[:top_n],
        top_surpluses_by_value=sorted(surpluses, key=lambda l: -l.diff_value)[:top_n],
        total_shortage_value=abs(shortage_value),
        total_surplus_value=surplus_value,
        total_shortage_units=abs(shortage_units),
        total_surplus_units=surplus_units,
        no_difference_count=no_difference,
        inventory_accuracy=(no_difference / counted * 100) if counted else 100.0,
        net_discrepancy_value=shortage_value + surplus_value,
        net_discrepancy_units=shortage_units + surplus_units,
        total_scanned_units=scanned,
    )
