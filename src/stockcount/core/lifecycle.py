"""
Per-item lifecycle for cyclic counting.

    pending -> controlled -> adjusted
    controlled -> pending (revert)

Items become adjusted only through finalize(), which moves every controlled
item of a group at once or none at all. Adjusted items stay editable, but an
edit marks them was_readjusted for good.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Iterable

from .differences import compute_diff, rank_by_impact
from .errors import FinalizeError, TransitionError
from .models import DEFAULT_CATEGORY, CyclicItem, InventoryRecord, ItemStatus

LOGGER = logging.getLogger(__name__)


class Anomaly(Enum):
    """How loudly the UI should react to an edit."""

    NONE = "none"
    NORMAL = "normal"
    HIGH = "high"


@dataclass(frozen=True)
class AnomalyThresholds:
    units: int = 50
    ratio: float = 0.5
    value: float = 50_000.0


def classify_anomaly(
    record: InventoryRecord, thresholds: AnomalyThresholds = AnomalyThresholds()
) -> Anomaly:
    """
    Classify the current difference of a record.

    High when the unit gap is both large and relatively large, or when its
    value alone is large. Any other non-zero gap is normal.
    """
    diff = compute_diff(record)
    if diff.quantity is None or diff.quantity == 0:
        return Anomaly.NONE
    gap = abs(diff.quantity)
    significant_qty = (
        gap > thresholds.units
        and gap / max(record.system_quantity, 1) > thresholds.ratio
    )
    high_value = gap * record.unit_cost > thresholds.value
    if significant_qty or high_value:
        return Anomaly.HIGH
    return Anomaly.NORMAL


def confirm(item: CyclicItem) -> None:
    """pending -> controlled with no variance (counted := system)."""
    if item.status != ItemStatus.PENDING:
        raise TransitionError(f"{item.identifier}: confirm requires pending, got {item.status.value}")
    item.counted_quantity = item.system_quantity
    item.status = ItemStatus.CONTROLLED


def set_quantity(
    item: CyclicItem, quantity: int, thresholds: AnomalyThresholds = AnomalyThresholds()
) -> Anomaly:
    """
    Record a counted quantity.

    pending/controlled items become controlled. Adjusted items keep their
    status and get was_readjusted set instead.
    """
    item.counted_quantity = int(quantity)
    if item.status == ItemStatus.ADJUSTED:
        item.was_readjusted = True
    else:
        item.status = ItemStatus.CONTROLLED
    anomaly = classify_anomaly(item, thresholds)
    if anomaly is Anomaly.HIGH:
        LOGGER.info(
            "High anomaly on %s: system %s, counted %s",
            item.identifier,
            item.system_quantity,
            item.counted_quantity,
        )
    return anomaly


def revert(item: CyclicItem) -> None:
    """controlled -> pending."""
    if item.status != ItemStatus.CONTROLLED:
        raise TransitionError(f"{item.identifier}: revert requires controlled, got {item.status.value}")
    item.status = ItemStatus.PENDING


@dataclass(frozen=True)
class AdjustmentRecord:
    """What a successful finalize committed."""

    group: str
    shortage_adjustment_id: str
    surplus_adjustment_id: str
    shortage_value: float
    surplus_value: float
    total_units_adjusted: int
    items_adjusted: int
    finalized_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "group": self.group,
            "shortage_adjustment_id": self.shortage_adjustment_id,
            "surplus_adjustment_id": self.surplus_adjustment_id,
            "shortage_value": self.shortage_value,
            "surplus_value": self.surplus_value,
            "total_units_adjusted": self.total_units_adjusted,
            "items_adjusted": self.items_adjusted,
            "finalized_at": self.finalized_at,
        }


def finalize(
    items: Iterable[CyclicItem],
    group: str,
    shortage_adjustment_id: str = "",
    surplus_adjustment_id: str = "",
) -> AdjustmentRecord:
    """
    Move every controlled item in `items` to adjusted, atomically.

    A shortage id is required when any controlled item is short, a surplus id
    when any is over. Guards run before the first mutation, so a failure
    leaves every item untouched.
    """
    controlled = [i for i in items if i.status == ItemStatus.CONTROLLED]
    shortage_id = (shortage_adjustment_id or "").strip()
    surplus_id = (surplus_adjustment_id or "").strip()

    shortage_value = 0.0
    surplus_value = 0.0
    units = 0
    has_shortage = has_surplus = False
    for item in controlled:
        diff = compute_diff(item)
        if diff.quantity is None:
            continue
        units += abs(diff.quantity)
        if diff.quantity < 0:
            has_shortage = True
            shortage_value += -diff.value
        elif diff.quantity > 0:
            has_surplus = True
            surplus_value += diff.value

    missing = []
    if has_shortage and not shortage_id:
        missing.append("shortage")
    if has_surplus and not surplus_id:
        missing.append("surplus")
    if missing:
        raise FinalizeError(group, missing)

    for item in controlled:
        item.status = ItemStatus.ADJUSTED

    LOGGER.info("Finalized %s: %d item(s) adjusted", group, len(controlled))
    return AdjustmentRecord(
        group=group,
        shortage_adjustment_id=shortage_id,
        surplus_adjustment_id=surplus_id,
        shortage_value=shortage_value,
        surplus_value=surplus_value,
        total_units_adjusted=units,
        items_adjusted=len(controlled),
    )


@dataclass
class ImportSummary:
    added: int = 0
    updated: int = 0
    ignored: int = 0


class CyclicWorksheet:
    """
    The items of one laboratory in one branch, indexed by identifier.

    Branch and lab are explicit constructor arguments; nothing is read from
    ambient session state. snapshot() hands out copies so callers never alias
    the worksheet's own items.
    """

    def __init__(
        self,
        branch: str,
        lab: str,
        items: Iterable[CyclicItem] = (),
        thresholds: AnomalyThresholds = AnomalyThresholds(),
    ):
        self.branch = branch
        self.lab = lab
        self.thresholds = thresholds
        self._items: dict[str, CyclicItem] = {}
        for item in items:
            self._items[item.identifier] = item.copy()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._items

    def get(self, identifier: str) -> CyclicItem:
        try:
            return self._items[identifier]
        except KeyError:
            raise KeyError(f"{identifier} is not in {self.lab}") from None

    def snapshot(self) -> list[CyclicItem]:
        return [item.copy() for item in self._items.values()]

    def group_items(self, group: str) -> list[CyclicItem]:
        return [i for i in self._items.values() if i.group == (group or DEFAULT_CATEGORY)]

    def groups(self) -> list[str]:
        return sorted({i.group for i in self._items.values()})

    def sorted_by_impact(self) -> list[CyclicItem]:
        return [item.copy() for item in rank_by_impact(self._items.values())]

    def confirm(self, identifier: str) -> None:
        confirm(self.get(identifier))

    def set_quantity(self, identifier: str, quantity: int) -> Anomaly:
        return set_quantity(self.get(identifier), quantity, self.thresholds)

    def revert(self, identifier: str) -> None:
        revert(self.get(identifier))

    def finalize(
        self,
        group: str,
        shortage_adjustment_id: str = "",
        surplus_adjustment_id: str = "",
        discard_pending: bool = False,
    ) -> AdjustmentRecord:
        """
        Finalize one group. With discard_pending the group's uncounted
        residue is removed once the transition succeeded.
        """
        members = self.group_items(group)
        record = finalize(members, group, shortage_adjustment_id, surplus_adjustment_id)
        if discard_pending:
            for item in members:
                if item.status == ItemStatus.PENDING:
                    del self._items[item.identifier]
        return record

    def apply_import(self, records: Iterable[InventoryRecord]) -> ImportSummary:
        """
        Merge a freshly uploaded cyclic sheet into the worksheet.

        - new identifiers: added as pending with counted = system
        - adjusted items: left alone (already finalized)
        - controlled items: refresh name, system quantity, cost and category,
          keep the count and status
        - pending items: reset from the file
        """
        summary = ImportSummary()
        for record in records:
            existing = self._items.get(record.identifier)
            if existing is None:
                self._items[record.identifier] = CyclicItem.from_record(
                    record, counted_quantity=record.system_quantity
                )
                summary.added += 1
                continue
            if existing.status == ItemStatus.ADJUSTED:
                summary.ignored += 1
                continue
            existing.name = record.name
            existing.system_quantity = record.system_quantity
            existing.unit_cost = record.unit_cost
            existing.category = record.category
            if existing.status == ItemStatus.PENDING:
                existing.counted_quantity = record.system_quantity
            summary.updated += 1
        LOGGER.info(
            "Import into %s/%s: %d added, %d updated, %d ignored",
            self.branch,
            self.lab,
            summary.added,
            summary.updated,
            summary.ignored,
        )
        return summary
