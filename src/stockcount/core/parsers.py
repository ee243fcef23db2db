"""
Parsers for branch count spreadsheets.

These parsers handle the messy reality of exported count sheets:
- Barcodes stored as numbers, with dashes or stray spaces
- Category spellings that drift between exports
- Columns that move around, with or without a header row
"""

from dataclasses import dataclass, field
import logging
import re
import unicodedata
from typing import Any

import pandas as pd

from .errors import LabMismatchError, MissingColumnsError
from .models import DEFAULT_CATEGORY, InventoryRecord

LOGGER = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def normalize_identifier(raw: Any) -> str | None:
    """
    Normalize an EAN-like identifier so both sides of a match agree.

    Handles:
    - 7791234567890.0 -> 7791234567890 (numeric cells read as floats)
    - " 779-1234 567 " -> 7791234567
    """
    if _is_missing(raw):
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    result = _NON_ALNUM.sub("", str(raw).strip())
    return result or None


def to_int(value: Any) -> int:
    """Spreadsheet number -> int; blanks and junk become 0."""
    if _is_missing(value):
        return 0
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return 0


def to_float(value: Any) -> float:
    if _is_missing(value):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def fold_text(value: Any) -> str:
    """Lowercase and strip accents for header keyword matching."""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(c for c in text if not unicodedata.combining(c))
    return " ".join(text.lower().split())


class CategoryNormalizer:
    """
    Maps raw category labels onto the fixed set of counting groups.

    Client-specific: the aliases reflect how the pharmacy exports spell them.
    """

    CATEGORIES = ["Medicamentos", "Perfumería", "Accesorios", "Varios"]
    ALIASES = {
        "Medicamento": "Medicamentos",
        "Perfumeria": "Perfumería",
    }

    def normalize(self, raw: Any) -> str:
        if _is_missing(raw):
            return DEFAULT_CATEGORY
        result = str(raw).strip()
        result = self.ALIASES.get(result, result)
        if result not in self.CATEGORIES:
            return DEFAULT_CATEGORY
        return result


@dataclass(frozen=True)
class ColumnSpec:
    """Where to find one logical field: header keywords first, then an offset."""

    name: str
    offset: int | None
    keywords: tuple[str, ...] = ()
    required: bool = True


@dataclass(frozen=True)
class ColumnLayout:
    """Column mapping for one kind of count file."""

    name: str
    columns: tuple[ColumnSpec, ...]
    has_header: bool = True

    def resolve(self, headers: list[Any] | None, width: int) -> dict[str, int]:
        """
        Map field names to column positions.

        Keyword detection runs against the header row first; fields not found
        that way fall back to their documented offset. Fields are resolved in
        declaration order and each column is claimed at most once, so put the
        more specific keywords ("stock sistema") before the generic ones.
        """
        folded = [fold_text(h) if not _is_missing(h) else "" for h in (headers or [])]
        claimed: set[int] = set()
        mapping: dict[str, int] = {}
        missing: list[str] = []

        for spec in self.columns:
            position = None
            for keyword in spec.keywords:
                for idx, header in enumerate(folded):
                    if idx not in claimed and header and keyword in header:
                        position = idx
                        break
                if position is not None:
                    break
            if position is None and spec.offset is not None and spec.offset < width:
                if spec.offset not in claimed:
                    position = spec.offset
            if position is None:
                if spec.required:
                    missing.append(spec.name)
                continue
            claimed.add(position)
            mapping[spec.name] = position

        if missing:
            raise MissingColumnsError(self.name, missing)
        return mapping


IDENTIFIER_KEYWORDS = ("codigo de barras", "codebar", "barcode", "ean", "codigo")
NAME_KEYWORDS = ("descripcion", "producto", "nombre", "name")
SYSTEM_KEYWORDS = ("stock sistema", "stock del sistema", "system", "sistema")
COUNTED_KEYWORDS = ("conteo fisico", "conteo", "contado", "fisico", "counted")
COST_KEYWORDS = ("costo", "cost")

SINGLE_COUNT_LAYOUT = ColumnLayout(
    name="single_count",
    columns=(
        ColumnSpec("identifier", 6, IDENTIFIER_KEYWORDS),
        ColumnSpec("name", 10, NAME_KEYWORDS),
        ColumnSpec("system_quantity", 15, SYSTEM_KEYWORDS),
        ColumnSpec("counted_quantity", 13, COUNTED_KEYWORDS),
        ColumnSpec("unit_cost", 19, COST_KEYWORDS),
        ColumnSpec("sale_price", 21, ("precio venta", "precio", "price"), required=False),
    ),
)

MERGE_COMPLETE_LAYOUT = ColumnLayout(
    name="merge_complete",
    columns=(
        ColumnSpec("identifier", 6, IDENTIFIER_KEYWORDS),
        ColumnSpec("name", 10, NAME_KEYWORDS, required=False),
        ColumnSpec("system_quantity", 15, SYSTEM_KEYWORDS),
        ColumnSpec("counted_quantity", 13, COUNTED_KEYWORDS),
        ColumnSpec("unit_cost", 19, COST_KEYWORDS),
    ),
)

MERGE_PARTIAL_LAYOUT = ColumnLayout(
    name="merge_partial",
    columns=(
        ColumnSpec("identifier", 0, IDENTIFIER_KEYWORDS),
        ColumnSpec("quantity", 1, ("cantidad", "conteo", "quantity", "qty")),
    ),
)

CYCLIC_LAYOUT = ColumnLayout(
    name="cyclic",
    columns=(
        ColumnSpec("identifier", 2, IDENTIFIER_KEYWORDS),
        ColumnSpec("name", 3, NAME_KEYWORDS),
        ColumnSpec("system_quantity", 4, SYSTEM_KEYWORDS + ("stock",)),
        ColumnSpec("category", 9, ("categoria", "category", "rubro"), required=False),
        ColumnSpec("unit_cost", 12, COST_KEYWORDS),
        ColumnSpec("laboratory", 14, ("laboratorio", "laboratory"), required=False),
    ),
)


@dataclass
class ParsedSheet:
    """Rows of a grid with their resolved column positions."""

    layout: ColumnLayout
    mapping: dict[str, int]
    rows: list[list[Any]] = field(default_factory=list)

    def value(self, row: list[Any], name: str) -> Any:
        idx = self.mapping.get(name)
        if idx is None or idx >= len(row):
            return None
        return row[idx]


def read_grid(frame: pd.DataFrame, layout: ColumnLayout) -> ParsedSheet:
    """
    Resolve a layout against a headerless grid (as read with header=None).

    Raises MissingColumnsError before any row is interpreted.
    """
    grid = frame.astype(object).where(frame.notna(), None).values.tolist()
    if layout.has_header and grid:
        headers, rows = grid[0], grid[1:]
    else:
        headers, rows = None, grid
    width = frame.shape[1]
    mapping = layout.resolve(headers, width)
    return ParsedSheet(layout=layout, mapping=mapping, rows=rows)


def parse_count_rows(
    frame: pd.DataFrame, layout: ColumnLayout = SINGLE_COUNT_LAYOUT
) -> list[InventoryRecord]:
    """
    Parse a single-count (or merge complete) grid into records.

    Rows without an identifier are skipped. Rows whose name column is empty
    are skipped too when the layout requires a name (blank trailer rows).
    """
    sheet = read_grid(frame, layout)
    name_required = any(c.name == "name" and c.required for c in layout.columns)
    records = []
    for row in sheet.rows:
        identifier = normalize_identifier(sheet.value(row, "identifier"))
        if not identifier:
            continue
        name = sheet.value(row, "name")
        if name_required and _is_missing(name):
            continue
        sale_price = sheet.value(row, "sale_price")
        records.append(
            InventoryRecord(
                identifier=identifier,
                name="" if _is_missing(name) else str(name).strip(),
                system_quantity=to_int(sheet.value(row, "system_quantity")),
                counted_quantity=to_int(sheet.value(row, "counted_quantity")),
                unit_cost=to_float(sheet.value(row, "unit_cost")),
                sale_price=None if _is_missing(sale_price) else to_float(sale_price),
            )
        )
    return records


def parse_partial_rows(frame: pd.DataFrame) -> list[tuple[str, int]]:
    """Parse a partial count grid into (identifier, quantity) pairs, duplicates kept."""
    sheet = read_grid(frame, MERGE_PARTIAL_LAYOUT)
    pairs = []
    for row in sheet.rows:
        identifier = normalize_identifier(sheet.value(row, "identifier"))
        if not identifier:
            continue
        pairs.append((identifier, to_int(sheet.value(row, "quantity"))))
    return pairs


def detect_laboratory(sheet: ParsedSheet, scan_rows: int = 19) -> str | None:
    """First non-blank laboratory value within the leading rows."""
    for row in sheet.rows[:scan_rows]:
        value = sheet.value(row, "laboratory")
        if not _is_missing(value) and str(value).strip():
            return str(value).strip()
    return None


def check_laboratory(expected: str, found: str | None) -> None:
    """Raise LabMismatchError unless the names match (case-insensitive, either contains the other)."""
    if not found:
        raise LabMismatchError(expected, None)
    current = expected.upper().strip()
    uploaded = found.upper().strip()
    if current != uploaded and current not in uploaded and uploaded not in current:
        raise LabMismatchError(expected, found)


def parse_cyclic_rows(
    frame: pd.DataFrame, lab_name: str | None = None
) -> list[InventoryRecord]:
    """
    Parse a cyclic counting sheet. Counted quantity starts equal to system.

    When lab_name is given the sheet's laboratory column must match it.
    """
    sheet = read_grid(frame, CYCLIC_LAYOUT)
    if lab_name is not None:
        check_laboratory(lab_name, detect_laboratory(sheet))

    categories = CategoryNormalizer()
    records = []
    for row in sheet.rows:
        name = sheet.value(row, "name")
        if _is_missing(name):
            continue
        identifier = normalize_identifier(sheet.value(row, "identifier"))
        if not identifier:
            continue
        system = to_int(sheet.value(row, "system_quantity"))
        records.append(
            InventoryRecord(
                identifier=identifier,
                name=str(name).strip(),
                system_quantity=system,
                counted_quantity=system,
                unit_cost=to_float(sheet.value(row, "unit_cost")),
                category=categories.normalize(sheet.value(row, "category")),
            )
        )
    LOGGER.debug("Parsed %d cyclic rows for %s", len(records), lab_name or "<any lab>")
    return records
