from __future__ import annotations

import pandas as pd
import pytest

from stockcount.core.errors import LabMismatchError, MissingColumnsError
from stockcount.core.parsers import (
    CategoryNormalizer,
    check_laboratory,
    normalize_identifier,
    parse_count_rows,
    parse_cyclic_rows,
    parse_partial_rows,
)


def _grid(header: list, rows: list[list]) -> pd.DataFrame:
    return pd.DataFrame([header] + rows)


def _positional_row(width: int, values: dict[int, object]) -> list:
    row = [None] * width
    for idx, value in values.items():
        row[idx] = value
    return row


@pytest.mark.parametrize(
    "raw, expected",
    [
        (" 779-1234 567 ", "7791234567"),
        (7791234567890.0, "7791234567890"),
        ("0779123", "0779123"),
        ("---", None),
        (None, None),
        (float("nan"), None),
    ],
)
def test_normalize_identifier(raw, expected):
    assert normalize_identifier(raw) == expected


def test_category_aliases_and_fallback():
    categories = CategoryNormalizer()
    assert categories.normalize("Medicamento") == "Medicamentos"
    assert categories.normalize("Perfumeria") == "Perfumería"
    assert categories.normalize(" Accesorios ") == "Accesorios"
    assert categories.normalize("Golosinas") == "Varios"
    assert categories.normalize(None) == "Varios"


def test_single_count_detects_columns_by_header():
    frame = _grid(
        ["Codigo de barras", "Descripcion", "Stock Sistema", "Conteo Fisico", "Costo"],
        [
            ["779-123 456", "Ibuprofeno", 10, 8, 150.5],
            [None, "no barcode", 1, 1, 1],
            ["7790001", None, 1, 1, 1],
        ],
    )
    records = parse_count_rows(frame)

    assert len(records) == 1
    record = records[0]
    assert record.identifier == "779123456"
    assert record.name == "Ibuprofeno"
    assert record.system_quantity == 10
    assert record.counted_quantity == 8
    assert record.unit_cost == 150.5
    assert record.sale_price is None


def test_single_count_falls_back_to_offsets():
    width = 22
    header = [None] * width
    row = _positional_row(
        width, {6: 7791234567890.0, 10: "Paracetamol", 13: 25, 15: 20, 19: 3.0, 21: 5.5}
    )
    records = parse_count_rows(_grid(header, [row]))

    assert len(records) == 1
    record = records[0]
    assert record.identifier == "7791234567890"
    assert record.counted_quantity == 25
    assert record.system_quantity == 20
    assert record.unit_cost == 3.0
    assert record.sale_price == 5.5
    assert record.diff_value == 15.0


def test_missing_required_columns_abort_before_parsing():
    frame = _grid(["foo", "bar", "baz"], [[1, 2, 3]])
    with pytest.raises(MissingColumnsError) as excinfo:
        parse_count_rows(frame)
    assert "identifier" in excinfo.value.missing


def test_partial_rows_keep_duplicates():
    frame = _grid(["EAN", "Cantidad"], [["12345678", 2], ["12-345-678", 1], [None, 4]])
    assert parse_partial_rows(frame) == [("12345678", 2), ("12345678", 1)]


def _cyclic_frame(lab: object) -> pd.DataFrame:
    width = 15
    row = _positional_row(
        width, {2: "123", 3: "Crema", 4: 7, 9: "Perfumeria", 12: 40.0, 14: lab}
    )
    blank_name = _positional_row(width, {2: "999", 4: 1})
    return _grid([None] * width, [row, blank_name])


def test_cyclic_rows_start_counted_at_system():
    records = parse_cyclic_rows(_cyclic_frame("LAB NORTE"), lab_name="Lab Norte")

    assert len(records) == 1
    record = records[0]
    assert record.identifier == "123"
    assert record.counted_quantity == record.system_quantity == 7
    assert record.category == "Perfumería"
    assert record.unit_cost == 40.0


def test_cyclic_sheet_for_another_lab_is_rejected():
    with pytest.raises(LabMismatchError):
        parse_cyclic_rows(_cyclic_frame("LAB NORTE"), lab_name="Lab Sur")


def test_cyclic_sheet_without_lab_is_rejected_when_lab_expected():
    with pytest.raises(LabMismatchError) as excinfo:
        parse_cyclic_rows(_cyclic_frame(None), lab_name="Lab Norte")
    assert excinfo.value.found is None


def test_lab_names_match_by_containment():
    check_laboratory("Norte", "LAB NORTE S.A.")
    check_laboratory("Laboratorio Norte", "norte")
