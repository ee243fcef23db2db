"""
Canonical shape of a counted item.

Differences are exposed as properties that recompute from the current
quantities and cost on every access, so an edit can never leave a stale
diff behind.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
import logging
import uuid

LOGGER = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Varios"


class ItemStatus(Enum):
    """Lifecycle status of a cyclic item."""

    PENDING = "pending"
    CONTROLLED = "controlled"
    ADJUSTED = "adjusted"


def clamp_cost(cost: float | None, identifier: str | None = None) -> float:
    """Coerce a unit cost to a non-negative float, warning when clamping."""
    if cost is None:
        return 0.0
    value = float(cost)
    if value != value:  # NaN
        return 0.0
    if value < 0:
        LOGGER.warning(
            "Negative unit cost %s for %s clamped to 0", value, identifier or "<no id>"
        )
        return 0.0
    return value


@dataclass
class InventoryRecord:
    """A counted product: system quantity vs physically counted quantity."""

    identifier: str
    name: str
    system_quantity: int
    counted_quantity: int | None  # None = not yet counted (distinct from 0)
    unit_cost: float = 0.0
    category: str | None = None
    sale_price: float | None = None

    def __post_init__(self):
        self.unit_cost = clamp_cost(self.unit_cost, self.identifier)

    @property
    def is_counted(self) -> bool:
        return self.counted_quantity is not None

    @property
    def diff_qty(self) -> int | None:
        from .differences import compute_diff

        return compute_diff(self).quantity

    @property
    def diff_value(self) -> float | None:
        from .differences import compute_diff

        return compute_diff(self).value

    @property
    def group(self) -> str:
        return self.category or DEFAULT_CATEGORY

    def copy(self) -> "InventoryRecord":
        return replace(self)


@dataclass
class CyclicItem(InventoryRecord):
    """Inventory record tracked through the cyclic counting lifecycle."""

    status: ItemStatus = ItemStatus.PENDING
    was_readjusted: bool = False
    item_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_record(cls, record: InventoryRecord, **overrides) -> "CyclicItem":
        values = {
            "identifier": record.identifier,
            "name": record.name,
            "system_quantity": record.system_quantity,
            "counted_quantity": record.counted_quantity,
            "unit_cost": record.unit_cost,
            "category": record.category,
            "sale_price": record.sale_price,
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "identifier": self.identifier,
            "name": self.name,
            "system_quantity": self.system_quantity,
            "counted_quantity": self.counted_quantity,
            "unit_cost": self.unit_cost,
            "category": self.category,
            "sale_price": self.sale_price,
            "status": self.status.value,
            "was_readjusted": self.was_readjusted,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CyclicItem":
        return cls(
            identifier=data["identifier"],
            name=data.get("name") or "",
            system_quantity=int(data.get("system_quantity") or 0),
            counted_quantity=data.get("counted_quantity"),
            unit_cost=data.get("unit_cost") or 0.0,
            category=data.get("category"),
            sale_price=data.get("sale_price"),
            status=ItemStatus(data.get("status", ItemStatus.PENDING.value)),
            was_readjusted=bool(data.get("was_readjusted", False)),
            item_id=data.get("item_id") or uuid.uuid4().hex,
        )
