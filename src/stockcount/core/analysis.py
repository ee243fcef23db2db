"""
Progress and variance rollups for dashboards.

Computes metrics for:
- One counting group (lab + category)
- Every group of a branch
- Branch-level progress against an externally configured group goal
- Data quality (completeness / accuracy) of a worksheet
"""

from typing import Iterable, Literal, Mapping, Protocol, Sequence

import pandas as pd
from pydantic import BaseModel, Field

from .models import DEFAULT_CATEGORY, CyclicItem, ItemStatus

COUNTED_STATUSES = [ItemStatus.CONTROLLED.value, ItemStatus.ADJUSTED.value]

GroupStatus = Literal["complete", "in_progress", "pending"]


class GoalProvider(Protocol):
    """Configuration collaborator supplying the per-branch group goal."""

    def goal_for(self, branch: str) -> int: ...


class GroupStats(BaseModel):
    """Progress and variance of one counting group."""

    lab: str | None = None
    category: str | None = None
    total_items: int
    controlled_count: int = Field(description="Items controlled or adjusted")
    progress: float = Field(description="Percent counted, 1 decimal")
    status: GroupStatus
    negative_value: float = Field(description="Sum of diff_value over short counted items")
    positive_value: float = Field(description="Sum of diff_value over surplus counted items")
    net_value: float
    negative_units: int
    positive_units: int
    net_units: int
    total_system_units: int = Field(description="System units of counted items")


class BranchSummary(BaseModel):
    """Branch progress measured in controlled groups against a goal."""

    branch: str
    group_goal: int = Field(description="Groups the branch is expected to count; 0 if unset")
    controlled_groups: int
    progress: float
    status: GroupStatus
    inventory_units: int = Field(description="System units of counted items")
    difference_units: int
    adjustments_value: float


class DataQualityScore(BaseModel):
    completeness: float
    accuracy: float
    total_items: int
    controlled_items: int
    items_with_large_diff: int


def _progress(done: int, total: int) -> float:
    return round(done / total * 100, 1) if total > 0 else 0.0


def _status(done: int, total: int) -> GroupStatus:
    if total > 0 and done >= total:
        return "complete"
    if done > 0:
        return "in_progress"
    return "pending"


def items_to_frame(items: Iterable[CyclicItem], **context) -> pd.DataFrame:
    """
    Flatten cyclic items into the row shape the reducers consume.

    Extra keyword arguments (branch=, lab=) become constant columns.
    """
    rows = []
    for item in items:
        row = {
            "identifier": item.identifier,
            "category": item.category,
            "status": item.status.value,
            "system_quantity": item.system_quantity,
            "counted_quantity": item.counted_quantity,
            "unit_cost": item.unit_cost,
        }
        row.update(context)
        rows.append(row)
    columns = ["identifier", "category", "status", "system_quantity", "counted_quantity", "unit_cost"]
    return pd.DataFrame(rows, columns=columns + [k for k in context if k not in columns])


def _with_differences(rows: pd.DataFrame) -> pd.DataFrame:
    """Recompute differences from quantities and cost; stored diffs are never read."""
    df = rows.copy()
    df["category"] = df["category"].fillna(DEFAULT_CATEGORY)
    df["is_counted"] = df["status"].isin(COUNTED_STATUSES)
    counted_qty = pd.to_numeric(df["counted_quantity"], errors="coerce")
    system_qty = pd.to_numeric(df["system_quantity"], errors="coerce").fillna(0)
    cost = pd.to_numeric(df["unit_cost"], errors="coerce").fillna(0).clip(lower=0)

    df["diff_qty"] = (counted_qty - system_qty).fillna(0)
    df["diff_value"] = df["diff_qty"] * cost

    counted = df["is_counted"]
    short = counted & (df["diff_qty"] < 0)
    over = counted & (df["diff_qty"] > 0)
    df["negative_value"] = df["diff_value"].where(short, 0.0)
    df["positive_value"] = df["diff_value"].where(over, 0.0)
    df["negative_units"] = df["diff_qty"].where(short, 0)
    df["positive_units"] = df["diff_qty"].where(over, 0)
    df["counted_system_units"] = system_qty.where(counted, 0)
    return df


def _stats_from_totals(totals: Mapping, **labels) -> GroupStats:
    total = int(totals["total_items"])
    done = int(totals["controlled_count"])
    negative = float(totals["negative_value"])
    positive = float(totals["positive_value"])
    neg_units = int(totals["negative_units"])
    pos_units = int(totals["positive_units"])
    return GroupStats(
        total_items=total,
        controlled_count=done,
        progress=_progress(done, total),
        status=_status(done, total),
        negative_value=negative,
        positive_value=positive,
        net_value=negative + positive,
        negative_units=neg_units,
        positive_units=pos_units,
        net_units=neg_units + pos_units,
        total_system_units=int(totals["counted_system_units"]),
        **labels,
    )


_AGGREGATIONS = dict(
    total_items=("status", "count"),
    controlled_count=("is_counted", "sum"),
    negative_value=("negative_value", "sum"),
    positive_value=("positive_value", "sum"),
    negative_units=("negative_units", "sum"),
    positive_units=("positive_units", "sum"),
    counted_system_units=("counted_system_units", "sum"),
)


def group_stats(items: Iterable[CyclicItem]) -> GroupStats:
    """
    Stats for one group. Pending items count toward the total but never
    toward the value or unit buckets.
    """
    df = _with_differences(items_to_frame(items))
    totals = {
        name: (df[column].sum() if fn == "sum" else df[column].count())
        for name, (column, fn) in _AGGREGATIONS.items()
    }
    return _stats_from_totals(totals)


def summarize_groups(rows: pd.DataFrame) -> list[GroupStats]:
    """
    One GroupStats per (lab, category) in a branch's rows.

    Expects columns: lab, category, status, system_quantity,
    counted_quantity, unit_cost.
    """
    if rows.empty:
        return []
    df = _with_differences(rows)
    df["lab"] = df["lab"].fillna("Unknown")
    grouped = df.groupby(["lab", "category"], sort=True).agg(**_AGGREGATIONS).reset_index()
    return [
        _stats_from_totals(row, lab=row["lab"], category=row["category"])
        for row in grouped.to_dict("records")
    ]


def branch_summary(branch: str, rows: pd.DataFrame, goal: int | None) -> BranchSummary:
    """
    Roll a branch's rows up against its group goal.

    Progress is controlled groups over the configured goal, independent of
    item-level progress. A lab counts as controlled once any of its items is
    controlled or adjusted. Missing or zero goal means progress 0.
    """
    goal = int(goal or 0)
    if rows.empty:
        controlled_groups, units, diff_units, value = 0, 0, 0, 0.0
    else:
        df = _with_differences(rows)
        counted = df[df["is_counted"]]
        controlled_groups = int(counted["lab"].fillna("Unknown").nunique())
        units = int(counted["counted_system_units"].sum())
        diff_units = int(counted["diff_qty"].sum())
        value = float(counted["diff_value"].sum())

    return BranchSummary(
        branch=branch,
        group_goal=goal,
        controlled_groups=controlled_groups,
        progress=_progress(controlled_groups, goal),
        status=_status(controlled_groups, goal),
        inventory_units=units,
        difference_units=diff_units,
        adjustments_value=value,
    )


def summarize_branches(
    rows: pd.DataFrame,
    goals: GoalProvider,
    branches: Sequence[str] | None = None,
) -> list[BranchSummary]:
    """
    Summaries for every branch, highest progress first.

    When `branches` is given every listed branch appears (even with no rows),
    row branch names are matched case-insensitively, and rows of unknown
    branches are ignored.
    """
    df = rows.copy()
    raw = df["branch"].fillna("").astype(str).str.strip() if not df.empty else pd.Series(dtype=str)
    if branches is None:
        canonical = {name.lower(): name for name in raw.unique() if name}
    else:
        canonical = {name.strip().lower(): name for name in branches}
    if not df.empty:
        df["branch"] = raw.str.lower().map(canonical)
        df = df[df["branch"].notna()]

    summaries = []
    for name in canonical.values():
        branch_rows = df[df["branch"] == name] if not df.empty else df
        summaries.append(branch_summary(name, branch_rows, goals.goal_for(name)))
    return sorted(summaries, key=lambda s: s.progress, reverse=True)


def data_quality(items: Iterable[CyclicItem], large_diff_ratio: float = 0.5) -> DataQualityScore:
    """Completeness (share counted) and accuracy (share within the deviation ratio)."""
    items = list(items)
    total = len(items)
    controlled = sum(1 for i in items if i.status.value in COUNTED_STATUSES)
    large = 0
    for item in items:
        diff = item.diff_qty
        if diff is None or item.system_quantity == 0:
            continue
        if abs(diff) / item.system_quantity > large_diff_ratio:
            large += 1
    return DataQualityScore(
        completeness=_progress(controlled, total),
        accuracy=_progress(total - large, total),
        total_items=total,
        controlled_items=controlled,
        items_with_large_diff=large,
    )
