# Core stock count engine: pure computation over counted items
# Nothing in here touches files, the network or a UI

from .errors import (
    IssueCode,
    StockCountError,
    MalformedInputError,
    MissingColumnsError,
    LabMismatchError,
    DuplicateIdentifierError,
    TransitionError,
    FinalizeError,
    PersistenceError,
    CatalogUnavailableError,
)
from .models import InventoryRecord, CyclicItem, ItemStatus
from .differences import compute_diff, rank_by_impact, analyze_count, CountAnalysis
from .parsers import normalize_identifier, CategoryNormalizer, ColumnLayout
from .quality import BatchValidator, ValidationResult, ValidationThresholds, validate, validate_item
from .reconciliation import MergeResult, MergeView, merge_counts
from .lifecycle import (
    Anomaly,
    AnomalyThresholds,
    AdjustmentRecord,
    CyclicWorksheet,
    classify_anomaly,
    confirm,
    set_quantity,
    revert,
    finalize,
)
from .analysis import (
    GroupStats,
    BranchSummary,
    group_stats,
    summarize_groups,
    branch_summary,
    summarize_branches,
    data_quality,
)
from .autosave import AutoSaveConfig, SaveCoordinator, SaveFailure, SaveOutcome, SaveState

__all__ = [
    "IssueCode",
    "StockCountError",
    "MalformedInputError",
    "MissingColumnsError",
    "LabMismatchError",
    "DuplicateIdentifierError",
    "TransitionError",
    "FinalizeError",
    "PersistenceError",
    "CatalogUnavailableError",
    "InventoryRecord",
    "CyclicItem",
    "ItemStatus",
    "compute_diff",
    "rank_by_impact",
    "analyze_count",
    "CountAnalysis",
    "normalize_identifier",
    "CategoryNormalizer",
    "ColumnLayout",
    "BatchValidator",
    "ValidationResult",
    "ValidationThresholds",
    "validate",
    "validate_item",
    "MergeResult",
    "MergeView",
    "merge_counts",
    "Anomaly",
    "AnomalyThresholds",
    "AdjustmentRecord",
    "CyclicWorksheet",
    "classify_anomaly",
    "confirm",
    "set_quantity",
    "revert",
    "finalize",
    "GroupStats",
    "BranchSummary",
    "group_stats",
    "summarize_groups",
    "branch_summary",
    "summarize_branches",
    "data_quality",
    "AutoSaveConfig",
    "SaveCoordinator",
    "SaveFailure",
    "SaveOutcome",
    "SaveState",
]
