from __future__ import annotations

import pandas as pd

from stockcount.clients.config import ConfigGoalProvider
from stockcount.core.analysis import (
    branch_summary,
    data_quality,
    group_stats,
    items_to_frame,
    summarize_branches,
    summarize_groups,
)
from stockcount.core.models import CyclicItem, ItemStatus


def _item(
    identifier: str,
    counted: int | None,
    status: ItemStatus,
    system: int = 10,
    cost: float = 1.0,
    category: str = "Medicamentos",
) -> CyclicItem:
    return CyclicItem(identifier, identifier, system, counted, cost, category, status=status)


def _group() -> list[CyclicItem]:
    return [
        _item("A", 8, ItemStatus.CONTROLLED, cost=5.0),
        _item("B", 13, ItemStatus.ADJUSTED, cost=2.0),
        _item("C", 0, ItemStatus.PENDING, cost=100.0),
        _item("D", None, ItemStatus.PENDING),
    ]


def test_group_stats_ignores_pending_items_in_buckets():
    stats = group_stats(_group())

    assert stats.total_items == 4
    assert stats.controlled_count == 2
    assert stats.progress == 50.0
    assert stats.status == "in_progress"
    assert stats.negative_value == -10.0
    assert stats.positive_value == 6.0
    assert stats.net_value == -4.0
    assert stats.negative_units == -2
    assert stats.positive_units == 3
    assert stats.net_units == 1
    assert stats.total_system_units == 20


def test_group_status_complete_and_pending():
    done = group_stats([_item("A", 10, ItemStatus.CONTROLLED), _item("B", 9, ItemStatus.ADJUSTED)])
    assert done.status == "complete"
    assert done.progress == 100.0

    idle = group_stats([_item("A", 10, ItemStatus.PENDING)])
    assert idle.status == "pending"
    assert idle.progress == 0.0


def test_progress_is_rounded_to_one_decimal():
    items = [_item("A", 10, ItemStatus.CONTROLLED)] + [
        _item(str(i), 10, ItemStatus.PENDING) for i in range(2)
    ]
    assert group_stats(items).progress == 33.3


def test_empty_group():
    stats = group_stats([])
    assert stats.total_items == 0
    assert stats.progress == 0.0
    assert stats.status == "pending"


def test_summarize_groups_by_lab_and_category():
    items = _group() + [_item("E", 10, ItemStatus.CONTROLLED, category="Accesorios")]
    stats = summarize_groups(items_to_frame(items, lab="Lab Norte"))

    assert [(s.lab, s.category) for s in stats] == [
        ("Lab Norte", "Accesorios"),
        ("Lab Norte", "Medicamentos"),
    ]
    assert stats[0].status == "complete"
    assert stats[1].controlled_count == 2


def _branch_rows() -> pd.DataFrame:
    return pd.concat(
        [
            items_to_frame(_group(), branch=" centro ", lab="Lab A"),
            items_to_frame([_item("X", 10, ItemStatus.PENDING)], branch="Centro", lab="Lab B"),
            items_to_frame([_item("Y", 7, ItemStatus.CONTROLLED)], branch="NORTE", lab="Lab C"),
        ],
        ignore_index=True,
    )


def test_branch_progress_uses_group_goal():
    rows = _branch_rows()
    summary = branch_summary("Centro", rows[rows["lab"] != "Lab C"], goal=4)

    assert summary.controlled_groups == 1
    assert summary.progress == 25.0
    assert summary.inventory_units == 20
    assert summary.difference_units == 1
    assert summary.adjustments_value == -4.0


def test_branch_progress_is_zero_without_goal():
    summary = branch_summary("Centro", _branch_rows(), goal=0)
    assert summary.progress == 0.0
    assert branch_summary("Centro", _branch_rows(), goal=None).progress == 0.0


def test_summarize_branches_matches_names_case_insensitively():
    goals = ConfigGoalProvider({"centro": 2, "Norte": 1})
    summaries = summarize_branches(_branch_rows(), goals, ["Centro", "Norte", "Sur"])

    assert [s.branch for s in summaries] == ["Norte", "Centro", "Sur"]
    assert [s.progress for s in summaries] == [100.0, 50.0, 0.0]
    assert summaries[2].group_goal == 0


def test_data_quality_scores():
    items = [
        _item("A", 9, ItemStatus.CONTROLLED),
        _item("B", 11, ItemStatus.CONTROLLED),
        _item("C", 0, ItemStatus.CONTROLLED),
        _item("D", 10, ItemStatus.PENDING),
    ]
    score = data_quality(items)

    assert score.completeness == 75.0
    assert score.accuracy == 75.0
    assert score.items_with_large_diff == 1
