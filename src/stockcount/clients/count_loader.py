"""
Loader for branch count spreadsheets.

Wires the core parsers to the three working modes:
- Single count: one file with system and counted quantities per product
- Cyclic: one laboratory's sheet, imported into a CyclicWorksheet
- Merge: a partial (subset team) file plus the complete branch file

Files are read positionally (header=None) so the layouts can fall back to
column offsets when the header row is missing or renamed. CSV cells are kept
as text so barcodes never lose leading zeros.
"""

from dataclasses import dataclass
import logging
from pathlib import Path

import pandas as pd

from ..core.differences import CountAnalysis, analyze_count
from ..core.lifecycle import CyclicWorksheet, ImportSummary
from ..core.models import InventoryRecord
from ..core.parsers import (
    MERGE_COMPLETE_LAYOUT,
    parse_count_rows,
    parse_cyclic_rows,
    parse_partial_rows,
)
from ..core.quality import BatchValidator, CatalogLookup, ValidationResult, ValidationThresholds
from ..core.reconciliation import MergeResult, merge_counts

LOGGER = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


@dataclass
class SingleCountImport:
    """A parsed single-count file with its analysis and quality report."""

    records: list[InventoryRecord]
    analysis: CountAnalysis
    quality: ValidationResult


def read_frame(source, name: str | None = None) -> pd.DataFrame:
    """
    Read a spreadsheet or CSV as a headerless grid.

    `source` is a path or a file-like object (an upload); the format comes
    from `name`, the object's own name, or the path suffix.
    """
    suffix = Path(str(name or getattr(source, "name", source))).suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return pd.read_excel(source, header=None)
    return pd.read_csv(source, header=None, dtype=str)


class CountFileLoader:
    """
    Loads count files from a directory.

    Pass a catalog to have every import checked against it; without one
    only the structural checks run. `thresholds` tune the quantity and
    variance warnings.
    """

    def __init__(
        self,
        data_dir: Path | str = ".",
        catalog: CatalogLookup | None = None,
        thresholds: ValidationThresholds | None = None,
    ):
        self.data_dir = Path(data_dir)
        self.catalog = catalog
        self.thresholds = thresholds or ValidationThresholds()

    def _path(self, filename: Path | str) -> Path:
        path = Path(filename)
        return path if path.is_absolute() else self.data_dir / path

    def load_single_count(self, filename: Path | str, top_n: int = 10) -> SingleCountImport:
        records = parse_count_rows(read_frame(self._path(filename)))
        analysis = analyze_count(records, top_n=top_n)
        quality = self.check_quality(records)
        LOGGER.info(
            "Single count %s: %d products, accuracy %.1f%%",
            filename,
            analysis.total_products,
            analysis.inventory_accuracy,
        )
        return SingleCountImport(records=records, analysis=analysis, quality=quality)

    def load_cyclic_sheet(self, filename: Path | str, lab: str | None = None) -> list[InventoryRecord]:
        """Parse a laboratory sheet; with `lab` the file must belong to it."""
        return parse_cyclic_rows(read_frame(self._path(filename)), lab_name=lab)

    def import_into(self, worksheet: CyclicWorksheet, filename: Path | str) -> ImportSummary:
        """Load a sheet for the worksheet's laboratory and merge it in."""
        return worksheet.apply_import(self.load_cyclic_sheet(filename, lab=worksheet.lab))

    def load_merge_sources(self, partial_file: Path | str, complete_file: Path | str) -> MergeResult:
        partial = parse_partial_rows(read_frame(self._path(partial_file)))
        complete = parse_count_rows(read_frame(self._path(complete_file)), MERGE_COMPLETE_LAYOUT)
        result = merge_counts(partial, complete)
        LOGGER.info("Merged %s into %s: %s", partial_file, complete_file, result.summary())
        return result

    def check_quality(self, records: list[InventoryRecord]) -> ValidationResult:
        return BatchValidator(self.catalog, **self.thresholds.as_kwargs()).run(records)
