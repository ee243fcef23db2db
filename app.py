"""
Stock Count Console

A thin Streamlit front end over the stock count engine.
Run with: streamlit run app.py
"""

import asyncio
from pathlib import Path

import pandas as pd
import streamlit as st

from stockcount.clients.cache import JsonFileCache
from stockcount.clients.catalog import CachedCatalog, FrameCatalog
from stockcount.clients.config import goal_provider, load_config
from stockcount.clients.count_loader import read_frame
from stockcount.clients.persistence import JsonInventoryStore
from stockcount.core.analysis import group_stats, summarize_branches
from stockcount.core.autosave import SaveCoordinator
from stockcount.core.differences import analyze_count
from stockcount.core.errors import MalformedInputError, StockCountError
from stockcount.core.lifecycle import Anomaly, CyclicWorksheet
from stockcount.core.models import ItemStatus
from stockcount.core.parsers import (
    MERGE_COMPLETE_LAYOUT,
    parse_count_rows,
    parse_cyclic_rows,
    parse_partial_rows,
)
from stockcount.core.quality import validate
from stockcount.core.reconciliation import merge_counts

CONFIG_PATH = Path("config/stockcount.yml")
STORE_PATH = Path("data/inventory.json")
CATALOG_PATH = Path("data/products.csv")
CATALOG_CACHE_PATH = Path("data/product_cache.json")

st.set_page_config(page_title="Stock Count Console", page_icon="📦", layout="wide")
st.title("📦 Stock Count Console")

config = load_config(CONFIG_PATH if CONFIG_PATH.exists() else None)
store = JsonInventoryStore(STORE_PATH)


@st.cache_resource
def load_catalog():
    """Product catalog behind a file cache, or None when no product table is present."""
    if not CATALOG_PATH.exists():
        return None
    return CachedCatalog(FrameCatalog.from_file(CATALOG_PATH), JsonFileCache(CATALOG_CACHE_PATH))


catalog = load_catalog()


def records_frame(records) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "EAN": r.identifier,
                "Product": r.name,
                "System": r.system_quantity,
                "Counted": r.counted_quantity,
                "Diff": r.diff_qty,
                "Diff $": r.diff_value,
            }
            for r in records
        ]
    )


mode = st.sidebar.radio("Mode", ["Single count", "Merge", "Cyclic", "Branches"])

if mode == "Single count":
    upload = st.file_uploader("Count file", type=["xlsx", "xls", "csv"])
    if upload:
        try:
            records = parse_count_rows(read_frame(upload))
        except MalformedInputError as exc:
            st.error(str(exc))
            st.stop()
        analysis = analyze_count(records)
        quality = validate(records, catalog, **config.validation.as_kwargs())
        for message in quality.errors + quality.warnings:
            st.warning(message)
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Products", analysis.total_products)
        col2.metric("Accuracy", f"{analysis.inventory_accuracy:.1f}%")
        col3.metric("Shortage", f"${analysis.total_shortage_value:,.0f}", delta=f"{analysis.total_shortage_units} u", delta_color="inverse")
        col4.metric("Surplus", f"${analysis.total_surplus_value:,.0f}", delta=f"{analysis.total_surplus_units} u")
        left, right = st.columns(2)
        left.subheader("Top shortages")
        left.dataframe(pd.DataFrame([l.model_dump() for l in analysis.top_shortages_by_value]), hide_index=True)
        right.subheader("Top surpluses")
        right.dataframe(pd.DataFrame([l.model_dump() for l in analysis.top_surpluses_by_value]), hide_index=True)

elif mode == "Merge":
    col1, col2 = st.columns(2)
    partial_upload = col1.file_uploader("Partial count", type=["xlsx", "xls", "csv"])
    complete_upload = col2.file_uploader("Complete branch count", type=["xlsx", "xls", "csv"])
    if partial_upload and complete_upload:
        try:
            result = merge_counts(
                parse_partial_rows(read_frame(partial_upload)),
                parse_count_rows(read_frame(complete_upload), MERGE_COMPLETE_LAYOUT),
            )
        except MalformedInputError as exc:
            st.error(str(exc))
            st.stop()
        for warning in result.warnings:
            st.warning(warning.message)
        if result.dropped:
            st.info(f"{len(result.dropped)} partial identifier(s) not in the complete file were dropped")
        tabs = st.tabs(["General", "Partial", "Branch"])
        for tab, rows in zip(tabs, [result.general, result.partial, result.branch]):
            tab.dataframe(records_frame(rows), hide_index=True, use_container_width=True)

elif mode == "Cyclic":
    branch = st.sidebar.selectbox("Branch", list(config.branches) or ["Default"])
    lab = st.sidebar.text_input("Laboratory")
    if not lab:
        st.info("Choose a laboratory to start counting")
        st.stop()

    key = f"worksheet::{branch}::{lab}"
    if key not in st.session_state:
        items = asyncio.run(store.load_group(branch, lab))
        st.session_state[key] = CyclicWorksheet(branch, lab, items, config.anomaly)
    worksheet: CyclicWorksheet = st.session_state[key]

    upload = st.file_uploader("Laboratory sheet", type=["xlsx", "xls", "csv"])
    if upload and st.button("Import sheet"):
        try:
            summary = worksheet.apply_import(parse_cyclic_rows(read_frame(upload), lab_name=lab))
            st.success(f"{summary.added} added, {summary.updated} updated, {summary.ignored} already adjusted")
        except MalformedInputError as exc:
            st.error(str(exc))

    stats = group_stats(worksheet.snapshot())
    st.progress(stats.progress / 100, text=f"{stats.controlled_count}/{stats.total_items} controlled")

    for item in worksheet.sorted_by_impact():
        cols = st.columns([4, 1, 1, 1, 1])
        cols[0].write(f"**{item.name}** · {item.identifier} · {item.status.value}")
        cols[1].write(f"System {item.system_quantity}")
        qty = cols[2].number_input("Counted", value=item.counted_quantity or 0, key=f"qty-{item.item_id}", label_visibility="collapsed")
        if qty != (item.counted_quantity or 0):
            anomaly = worksheet.set_quantity(item.identifier, qty)
            if anomaly is Anomaly.HIGH:
                st.warning(f"Large difference on {item.name}")
        if item.status is ItemStatus.PENDING and cols[3].button("OK", key=f"ok-{item.item_id}"):
            worksheet.confirm(item.identifier)
        if item.status is ItemStatus.CONTROLLED and cols[4].button("Undo", key=f"undo-{item.item_id}"):
            worksheet.revert(item.identifier)

    def save_worksheet():
        coordinator = SaveCoordinator(
            branch, lab, store, catalog, config.autosave, thresholds=config.validation
        )
        outcome = asyncio.run(coordinator.save_now(worksheet.snapshot()))
        for warning in outcome.warnings:
            st.warning(warning)
        if not outcome.ok:
            st.error(outcome.failure.message)
        return outcome.ok

    if st.button("Save") and save_worksheet():
        st.success("Saved")

    with st.expander("Finalize group"):
        group = st.selectbox("Group", worksheet.groups())
        shortage_id = st.text_input("Shortage adjustment id")
        surplus_id = st.text_input("Surplus adjustment id")
        if st.button("Finalize"):
            try:
                record = worksheet.finalize(group, shortage_id, surplus_id)
            except StockCountError as exc:
                st.error(str(exc))
            else:
                if save_worksheet():
                    asyncio.run(store.record_adjustment(branch, record))
                    st.success(f"{record.items_adjusted} item(s) adjusted")

else:
    rows = asyncio.run(store.rows())
    summaries = summarize_branches(rows, goal_provider(config), list(config.branches) or None)
    st.dataframe(pd.DataFrame([s.model_dump() for s in summaries]), hide_index=True, use_container_width=True)
