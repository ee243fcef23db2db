"""
Batch validation run before any count is committed.

Provides a structured way to collect every problem of a batch in one pass:
blocking errors stop a save, warnings are surfaced but never block.
Extend by registering custom checks via add_check().
"""

from collections import Counter
from dataclasses import dataclass, field
import logging
from typing import Callable, Iterable, Protocol, Sequence

from .errors import CatalogUnavailableError, IssueCode
from .models import CyclicItem, InventoryRecord, ItemStatus

LOGGER = logging.getLogger(__name__)

HIGH_QUANTITY_LIMIT = 10_000
HIGH_VARIANCE_RATIO = 0.9


class CatalogLookup(Protocol):
    """The part of the catalog collaborator validation relies on."""

    def existing(self, identifiers: Iterable[str]) -> set[str]: ...


@dataclass(frozen=True)
class ValidationThresholds:
    high_quantity_limit: int = HIGH_QUANTITY_LIMIT
    high_variance_ratio: float = HIGH_VARIANCE_RATIO

    def as_kwargs(self) -> dict:
        return {
            "high_quantity_limit": self.high_quantity_limit,
            "high_variance_ratio": self.high_variance_ratio,
        }


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a batch."""

    code: IssueCode
    severity: str  # "error" or "warning"
    message: str
    identifier: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one batch."""

    issues: tuple[ValidationIssue, ...] = ()

    @property
    def errors(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    @property
    def valid(self) -> bool:
        return not self.errors

    def codes(self) -> set[IssueCode]:
        return {i.code for i in self.issues}

    def summary(self) -> dict:
        return {
            "valid": self.valid,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
        }


Check = Callable[[Sequence[InventoryRecord]], list[ValidationIssue]]


def _label(record: InventoryRecord, index: int) -> str:
    return f'"{record.name}"' if record.name else f"item {index + 1}"


def _error(code: IssueCode, message: str, identifier: str | None = None) -> ValidationIssue:
    return ValidationIssue(code, "error", message, identifier)


def _warning(code: IssueCode, message: str, identifier: str | None = None) -> ValidationIssue:
    return ValidationIssue(code, "warning", message, identifier)


class BatchValidator:
    """
    Reusable validator for count batches.

    Default checks:
    - Missing identifiers / names
    - Negative and suspiciously large counted quantities
    - Duplicate identifiers within the batch
    - Identifiers unknown to the catalog (one batched lookup)
    - Extreme variance on controlled items
    """

    def __init__(
        self,
        catalog: CatalogLookup | None = None,
        high_quantity_limit: int = HIGH_QUANTITY_LIMIT,
        high_variance_ratio: float = HIGH_VARIANCE_RATIO,
    ):
        self.catalog = catalog
        self.high_quantity_limit = high_quantity_limit
        self.high_variance_ratio = high_variance_ratio
        self._checks: list[Check] = []
        self._add_default_checks()

    def _add_default_checks(self):
        self.add_check(self._check_fields)
        self.add_check(self._check_quantities)
        self.add_check(self._check_duplicates)
        self.add_check(self._check_catalog)
        self.add_check(self._check_variance)

    def add_check(self, check_fn: Check) -> "BatchValidator":
        """Add a custom check function. Returns self for chaining."""
        self._checks.append(check_fn)
        return self

    def _check_fields(self, batch: Sequence[InventoryRecord]) -> list[ValidationIssue]:
        issues = []
        for index, record in enumerate(batch):
            if not record.identifier:
                issues.append(
                    _error(IssueCode.MISSING_IDENTIFIER, f"Item {index + 1} has no identifier")
                )
            if not record.name:
                issues.append(
                    _warning(
                        IssueCode.MISSING_NAME,
                        f"Item {index + 1} has no name",
                        record.identifier or None,
                    )
                )
        return issues

    def _check_quantities(self, batch: Sequence[InventoryRecord]) -> list[ValidationIssue]:
        issues = []
        for index, record in enumerate(batch):
            qty = record.counted_quantity
            if qty is None:
                continue
            if qty < 0:
                issues.append(
                    _error(
                        IssueCode.NEGATIVE_QUANTITY,
                        f"Negative quantity in {_label(record, index)} ({qty})",
                        record.identifier,
                    )
                )
            elif qty > self.high_quantity_limit:
                issues.append(
                    _warning(
                        IssueCode.HIGH_QUANTITY,
                        f"Very high quantity in {_label(record, index)} ({qty})",
                        record.identifier,
                    )
                )
        return issues

    def _check_duplicates(self, batch: Sequence[InventoryRecord]) -> list[ValidationIssue]:
        counts = Counter(r.identifier for r in batch if r.identifier)
        dupes = [ean for ean, n in counts.items() if n > 1]
        if not dupes:
            return []
        return [
            _error(
                IssueCode.DUPLICATE_IDENTIFIER,
                f"Duplicate identifiers: {', '.join(dupes)}",
            )
        ]

    def _check_catalog(self, batch: Sequence[InventoryRecord]) -> list[ValidationIssue]:
        if self.catalog is None:
            return []
        identifiers = list(dict.fromkeys(r.identifier for r in batch if r.identifier))
        if not identifiers:
            return []
        try:
            known = self.catalog.existing(identifiers)
        except CatalogUnavailableError as exc:
            LOGGER.warning("Catalog lookup failed during validation: %s", exc)
            return [
                _warning(IssueCode.CATALOG_UNAVAILABLE, "Could not verify products against the catalog")
            ]
        missing = [ean for ean in identifiers if ean not in known]
        if not missing:
            return []
        message = f"{len(missing)} product(s) not found in the catalog"
        if len(missing) <= 5:
            message += f": {', '.join(missing)}"
        return [_error(IssueCode.UNKNOWN_CATALOG_ENTRY, message)]

    def _check_variance(self, batch: Sequence[InventoryRecord]) -> list[ValidationIssue]:
        issues = []
        for record in batch:
            if not isinstance(record, CyclicItem) or record.status != ItemStatus.CONTROLLED:
                continue
            diff = record.diff_qty
            if diff is None or record.system_quantity <= 0:
                continue
            if abs(diff) / record.system_quantity > self.high_variance_ratio:
                issues.append(
                    _warning(
                        IssueCode.HIGH_VARIANCE_WHILE_CONTROLLED,
                        f'Difference >{self.high_variance_ratio:.0%} in "{record.name}": '
                        f"system {record.system_quantity}, counted {record.counted_quantity}",
                        record.identifier,
                    )
                )
        return issues

    def run(self, batch: Sequence[InventoryRecord]) -> ValidationResult:
        """Run all checks and return every issue found."""
        batch = list(batch)
        if not batch:
            return ValidationResult((_error(IssueCode.EMPTY_BATCH, "No items to save"),))

        issues: list[ValidationIssue] = []
        for check_fn in self._checks:
            issues.extend(check_fn(batch))

        for issue in issues:
            if issue.severity == "warning":
                LOGGER.info("Validation warning [%s]: %s", issue.code.value, issue.message)
        return ValidationResult(tuple(issues))


def validate(
    batch: Sequence[InventoryRecord], catalog: CatalogLookup | None = None, **thresholds
) -> ValidationResult:
    """Validate a batch against the default checks. Never mutates the batch."""
    return BatchValidator(catalog, **thresholds).run(batch)


def validate_item(item: InventoryRecord, high_quantity_limit: int = HIGH_QUANTITY_LIMIT) -> list[ValidationIssue]:
    """Per-edit checks for a single item; used while the user is typing."""
    issues = []
    if not item.identifier:
        issues.append(_error(IssueCode.MISSING_IDENTIFIER, "Identifier required"))
    qty = item.counted_quantity
    if qty is not None and qty < 0:
        issues.append(
            _error(IssueCode.NEGATIVE_QUANTITY, "Quantity cannot be negative", item.identifier)
        )
    if qty is not None and qty > high_quantity_limit:
        issues.append(
            _warning(IssueCode.HIGH_QUANTITY, "Suspiciously high quantity", item.identifier)
        )
    return issues
