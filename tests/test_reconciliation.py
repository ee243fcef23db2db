from __future__ import annotations

import pytest

from stockcount.core.errors import DuplicateIdentifierError, IssueCode
from stockcount.core.models import InventoryRecord
from stockcount.core.reconciliation import MergeView, merge_counts, sum_partial_counts


def _complete(identifier: str, branch_qty: int, system: int = 10, cost: float = 1.0) -> InventoryRecord:
    return InventoryRecord(identifier, f"Product {identifier}", system, branch_qty, cost)


def test_end_to_end_merge_example():
    complete = [_complete("12345678", branch_qty=5, system=10, cost=200)]
    partial = [("12345678", 2), ("12345678", 1)]

    result = merge_counts(partial, complete)

    assert result.partial_totals == {"12345678": 3}

    general = result.general[0]
    assert general.counted_quantity == 8
    assert general.diff_qty == -2
    assert general.diff_value == -400

    partial_row = result.partial[0]
    assert partial_row.counted_quantity == 3
    assert partial_row.diff_qty == -7
    assert partial_row.diff_value == -1400

    assert all(r.identifier != "12345678" for r in result.branch)


def test_partial_duplicates_are_summed():
    assert sum_partial_counts([("X", 2), ("X", 1)]) == {"X": 3}


def test_every_complete_identifier_lands_in_exactly_one_view():
    complete = [_complete(str(i), branch_qty=i) for i in range(1, 8)]
    partial = [("2", 1), ("4", 1), ("6", 3), ("999", 5)]

    result = merge_counts(partial, complete)

    partial_ids = {r.identifier for r in result.partial}
    branch_ids = {r.identifier for r in result.branch}
    general_ids = {r.identifier for r in result.general}
    assert partial_ids == {"2", "4", "6"}
    assert partial_ids.isdisjoint(branch_ids)
    assert partial_ids | branch_ids == general_ids
    assert len(result.partial) + len(result.branch) == len(result.general)
    assert result.dropped == ["999"]
    assert result.view(MergeView.BRANCH) is result.branch


def test_merge_is_idempotent():
    complete = [_complete("1", 3), _complete("2", 4)]
    partial = [("1", 1), ("1", 2)]
    first = merge_counts(partial, complete)
    second = merge_counts(partial, complete)
    assert first == second
    assert repr(first) == repr(second)


def test_identifiers_are_normalized_on_both_sides():
    result = merge_counts([(" 1234-5678 ", 2)], [_complete("12345678", 1)])
    assert [r.identifier for r in result.partial] == ["12345678"]
    assert not result.warnings


def test_views_keep_complete_row_reference_data():
    result = merge_counts([("A", 4)], [_complete("A", 1, system=9, cost=2.5)])
    for view in (result.general, result.partial):
        assert view[0].system_quantity == 9
        assert view[0].unit_cost == 2.5


def test_duplicate_complete_identifiers_are_an_error():
    with pytest.raises(DuplicateIdentifierError) as excinfo:
        merge_counts([], [_complete("A", 1), _complete("A", 2)])
    assert excinfo.value.identifiers == ["A"]


def test_no_matches_is_a_warning_not_a_failure():
    complete = [_complete("1", 3), _complete("2", 4)]
    result = merge_counts([("ABC", 1)], complete)

    assert result.partial == []
    assert len(result.branch) == 2
    assert [w.code for w in result.warnings] == [IssueCode.NO_PARTIAL_MATCHES]
    assert "identifier format" in result.warnings[0].message


def test_empty_partial_file_warns():
    result = merge_counts([], [_complete("1", 3)])
    assert result.warnings[0].message == "Partial file is empty"
    assert result.match_rate == 0
