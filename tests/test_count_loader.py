from __future__ import annotations

import io

import pandas as pd
import pytest

from stockcount.clients.count_loader import CountFileLoader, read_frame
from stockcount.core.errors import IssueCode, LabMismatchError
from stockcount.core.lifecycle import CyclicWorksheet
from stockcount.core.models import CyclicItem, ItemStatus
from stockcount.core.quality import ValidationThresholds


def _write_grid(path, rows: list[list]) -> None:
    pd.DataFrame(rows).to_csv(path, header=False, index=False)


@pytest.fixture
def data_dir(tmp_path):
    _write_grid(
        tmp_path / "single.csv",
        [
            ["Codigo de barras", "Descripcion", "Stock Sistema", "Conteo Fisico", "Costo", "Precio Venta"],
            ["0779001", "Ibuprofeno", 10, 8, 5.0, 9.0],
            ["0779002", "Paracetamol", 4, 6, 2.0, 3.0],
            ["0779003", "Aspirina", 5, 5, 1.0, 2.0],
        ],
    )
    _write_grid(
        tmp_path / "complete.csv",
        [
            ["EAN", "Descripcion", "Stock Sistema", "Conteo", "Costo"],
            ["12345678", "Crema", 10, 5, 200],
            ["87654321", "Jabon", 3, 3, 10],
        ],
    )
    _write_grid(tmp_path / "partial.csv", [["EAN", "Cantidad"], ["12345678", 2], ["1234-5678", 1]])

    cyclic_header = [None] * 15
    cyclic_header[2], cyclic_header[3], cyclic_header[4] = "Codigo", "Descripcion", "Stock"
    cyclic_header[9], cyclic_header[12], cyclic_header[14] = "Categoria", "Costo", "Laboratorio"
    cyclic_row = [None] * 15
    cyclic_row[2], cyclic_row[3], cyclic_row[4] = "555", "Shampoo", 12
    cyclic_row[9], cyclic_row[12], cyclic_row[14] = "Perfumeria", 30, "LAB NORTE"
    _write_grid(tmp_path / "cyclic.csv", [cyclic_header, cyclic_row])
    return tmp_path


def test_single_count_keeps_leading_zeros_and_analyses(data_dir):
    loaded = CountFileLoader(data_dir).load_single_count("single.csv")

    assert [r.identifier for r in loaded.records] == ["0779001", "0779002", "0779003"]
    assert loaded.records[0].sale_price == 9.0
    assert loaded.analysis.total_shortage_value == 10.0
    assert loaded.analysis.total_surplus_value == 4.0
    assert loaded.quality.valid


def test_single_count_quality_uses_catalog(data_dir):
    class Catalog:
        def existing(self, identifiers):
            return {"0779001"}

    loaded = CountFileLoader(data_dir, catalog=Catalog()).load_single_count("single.csv")
    assert IssueCode.UNKNOWN_CATALOG_ENTRY in loaded.quality.codes()


def test_merge_sources_end_to_end(data_dir):
    result = CountFileLoader(data_dir).load_merge_sources("partial.csv", "complete.csv")

    assert result.partial_totals == {"12345678": 3}
    assert result.general[0].counted_quantity == 8
    assert result.general[0].diff_value == -400
    assert result.partial[0].diff_value == -1400
    assert [r.identifier for r in result.branch] == ["87654321"]


def test_import_into_worksheet(data_dir):
    existing = CyclicItem("555", "Shampoo", 10, 9, 30.0, "Perfumería", status=ItemStatus.CONTROLLED)
    worksheet = CyclicWorksheet("Centro", "Lab Norte", [existing])

    summary = CountFileLoader(data_dir).import_into(worksheet, "cyclic.csv")

    assert summary.updated == 1
    item = worksheet.get("555")
    assert item.system_quantity == 12
    assert item.counted_quantity == 9
    assert item.status is ItemStatus.CONTROLLED


def test_cyclic_sheet_for_wrong_lab(data_dir):
    with pytest.raises(LabMismatchError):
        CountFileLoader(data_dir).load_cyclic_sheet("cyclic.csv", lab="Lab Sur")


def test_read_frame_accepts_uploads():
    upload = io.StringIO("EAN,Cantidad\n00123,4\n")
    frame = read_frame(upload, name="partial.csv")
    assert frame.iloc[1, 0] == "00123"


def test_quality_uses_configured_thresholds(data_dir):
    loader = CountFileLoader(data_dir, thresholds=ValidationThresholds(high_quantity_limit=5))
    loaded = loader.load_single_count("single.csv")

    assert loaded.quality.valid
    assert IssueCode.HIGH_QUANTITY in loaded.quality.codes()
    assert len(loaded.quality.warnings) == 2
