"""
Streamlit entry point — Pharmacy Catalog storefront.

Three pages, picked in the sidebar:
  1. Catalog — search, filter, sort and page through the medicine grid;
     open a medicine for its detail view
  2. Enquiry — medicines the shopper saved to ask the pharmacy about
  3. Admin — data source status, force reload, header mapping report,
     unmapped headers, normalization warnings and a raw-row preview

The catalog itself is owned by one CatalogCacheManager per browser session.
When a fetch fails, the error is shown in a banner above the last known
good catalog.

Contains NO business logic — only calls processing / analysis modules and
displays results.
"""

import asyncio
import logging

import pandas as pd
import streamlit as st

from analysis.catalog_query import (
    ALL,
    SORT_OPTIONS,
    CatalogFilter,
    availability_summary,
    catalog_frame,
    facet_values,
    filter_medicines,
    find_medicine,
    paginate,
    raw_preview_frame,
)
from config.data_source import (
    GID_ENV_VAR,
    SPREADSHEET_ID_ENV_VAR,
    load_data_source,
)
from processing.catalog_cache import CatalogCacheManager, CatalogState
from processing.catalog_fetcher import build_sheet_url
from processing.entity_normalizer import Availability, Medicine
from processing.enquiry_list import EnquiryList
from processing.header_reconciler import unmapped_headers

logger = logging.getLogger(__name__)

GRID_COLUMNS: int = 4
RAW_PREVIEW_ROWS: int = 10

_AVAILABILITY_BADGES: dict[Availability, str] = {
    Availability.IN_STOCK: "🟢",
    Availability.LOW_STOCK: "🟠",
    Availability.OUT_OF_STOCK: "🔴",
}


# ═══════════════════════════════════════════════════════════════════════════
# Page configuration
# ═══════════════════════════════════════════════════════════════════════════

st.set_page_config(
    page_title="Pharmacy Catalog",
    page_icon="💊",
    layout="wide",
    initial_sidebar_state="expanded",
)


# ═══════════════════════════════════════════════════════════════════════════
# Session state initialisation
# ═══════════════════════════════════════════════════════════════════════════

def _secret_overrides() -> dict[str, str]:
    """Data source overrides from .streamlit/secrets.toml, if any."""
    try:
        return {
            key: str(st.secrets[key])
            for key in (SPREADSHEET_ID_ENV_VAR, GID_ENV_VAR)
            if key in st.secrets
        }
    except FileNotFoundError:
        return {}


def _init_session_state() -> None:
    """Ensure all required session state keys exist with sensible defaults."""
    if "catalog" not in st.session_state:
        source = load_data_source(_secret_overrides())
        manager = CatalogCacheManager(source=source)
        asyncio.run(manager.start())
        st.session_state["catalog"] = manager

    defaults: dict = {
        "enquiry": None,
        "selected_medicine_id": None,
        "catalog_page": 1,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value

    if st.session_state["enquiry"] is None:
        st.session_state["enquiry"] = EnquiryList()


_init_session_state()

catalog: CatalogCacheManager = st.session_state["catalog"]
enquiry: EnquiryList = st.session_state["enquiry"]
medicines: list[Medicine] = catalog.medicines
status = catalog.status


# ═══════════════════════════════════════════════════════════════════════════
# Sidebar — Navigation
# ═══════════════════════════════════════════════════════════════════════════

st.sidebar.title("💊 Pharmacy Catalog")

page = st.sidebar.radio(
    "Go to",
    options=["Catalog", f"Enquiry ({len(enquiry)})", "Admin"],
    label_visibility="collapsed",
)

st.sidebar.divider()
if status.last_updated is not None:
    st.sidebar.caption(
        f"Catalog updated {status.last_updated.astimezone():%Y-%m-%d %H:%M}"
    )
st.sidebar.caption(f"{len(medicines)} medicines")


# ═══════════════════════════════════════════════════════════════════════════
# Error banner
# ═══════════════════════════════════════════════════════════════════════════

if status.state is CatalogState.FAILED and status.error:
    if medicines:
        st.error(
            f"Could not refresh the catalog: {status.error} "
            "Showing the last saved catalog."
        )
    else:
        st.error(f"Could not load the catalog: {status.error}")


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _availability_label(medicine: Medicine) -> str:
    return f"{_AVAILABILITY_BADGES[medicine.availability]} {medicine.availability.value}"


def _enquiry_button(medicine: Medicine, key: str) -> None:
    """Add / remove toggle for the enquiry list. *key* must be unique per run."""
    if enquiry.contains(medicine.id):
        if st.button("Remove from enquiry", key=f"{key}_remove"):
            enquiry.remove(medicine.id)
            st.rerun()
    else:
        if st.button("Add to enquiry", key=f"{key}_add", type="primary"):
            enquiry.add(medicine)
            st.rerun()


def _render_card(medicine: Medicine, position: int) -> None:
    with st.container(border=True):
        st.image(medicine.display_image_url, use_container_width=True)
        st.markdown(f"**{medicine.name}**")
        st.caption(f"{medicine.generic_name} · {medicine.brand}")
        st.write(f"₹{medicine.price:,.2f}")
        st.caption(_availability_label(medicine))
        if medicine.prescription:
            st.caption("℞ Prescription required")
        if st.button("View details", key=f"view_{position}_{medicine.id}"):
            st.session_state["selected_medicine_id"] = medicine.id
            st.rerun()


def _render_detail(medicine: Medicine) -> None:
    if st.button("← Back to catalog"):
        st.session_state["selected_medicine_id"] = None
        st.rerun()

    col_image, col_info = st.columns([1, 2])
    with col_image:
        st.image(medicine.display_image_url, use_container_width=True)
    with col_info:
        st.header(medicine.name)
        st.caption(f"{medicine.generic_name} · {medicine.category}")
        st.subheader(f"₹{medicine.price:,.2f}")
        st.write(f"{_availability_label(medicine)} ({medicine.stock:g} units)")
        if medicine.prescription:
            st.warning("℞ Prescription required")
        _enquiry_button(medicine, key=f"detail_{medicine.id}")

        details = {
            "Brand": medicine.brand,
            "Manufacturer": medicine.manufacturer,
            "Form": medicine.form,
            "Dosage": medicine.dosage,
        }
        for label, value in details.items():
            if value:
                st.write(f"**{label}:** {value}")

    if medicine.description:
        st.subheader("Description")
        st.write(medicine.description)

    for title, entries in (
        ("Uses", medicine.uses),
        ("Side Effects", medicine.side_effects),
        ("Contraindications", medicine.contraindications),
    ):
        if entries:
            st.subheader(title)
            st.markdown("\n".join(f"- {entry}" for entry in entries))


# ═══════════════════════════════════════════════════════════════════════════
# Page: Catalog
# ═══════════════════════════════════════════════════════════════════════════

if page == "Catalog":
    selected = find_medicine(medicines, st.session_state["selected_medicine_id"] or "")

    if selected is not None:
        _render_detail(selected)

    else:
        st.title("Medicine Catalog")

        col_search, col_sort = st.columns([3, 1])
        with col_search:
            search = st.text_input("Search", placeholder="Name, generic name or brand")
        with col_sort:
            sort = st.selectbox(
                "Sort by",
                options=list(SORT_OPTIONS),
                format_func=SORT_OPTIONS.get,
            )

        col_category, col_manufacturer, col_rx = st.columns([2, 2, 1])
        with col_category:
            category = st.selectbox(
                "Category", options=[ALL] + facet_values(medicines, "category"),
                format_func=lambda value: "All categories" if value == ALL else value,
            )
        with col_manufacturer:
            manufacturer = st.selectbox(
                "Manufacturer", options=[ALL] + facet_values(medicines, "manufacturer"),
                format_func=lambda value: "All manufacturers" if value == ALL else value,
            )
        with col_rx:
            prescription_only = st.checkbox("Prescription only")

        flt = CatalogFilter(
            search=search,
            category=category,
            manufacturer=manufacturer,
            prescription_only=prescription_only,
            sort=sort,
        )
        matched = filter_medicines(medicines, flt)

        if st.session_state.get("_last_filter") != flt:
            st.session_state["_last_filter"] = flt
            st.session_state["catalog_page"] = 1

        result = paginate(matched, st.session_state["catalog_page"])
        st.caption(f"{result.total_items} medicines found")

        if not result.items:
            st.info("No medicines match the current filters.")

        for start in range(0, len(result.items), GRID_COLUMNS):
            columns = st.columns(GRID_COLUMNS)
            for offset, (column, medicine) in enumerate(
                zip(columns, result.items[start:start + GRID_COLUMNS])
            ):
                with column:
                    _render_card(medicine, position=start + offset)

        if result.total_pages > 1:
            col_prev, col_info, col_next = st.columns([1, 2, 1])
            with col_prev:
                if st.button("← Previous", disabled=result.page <= 1):
                    st.session_state["catalog_page"] = result.page - 1
                    st.rerun()
            with col_info:
                st.caption(f"Page {result.page} of {result.total_pages}")
            with col_next:
                if st.button("Next →", disabled=result.page >= result.total_pages):
                    st.session_state["catalog_page"] = result.page + 1
                    st.rerun()


# ═══════════════════════════════════════════════════════════════════════════
# Page: Enquiry
# ═══════════════════════════════════════════════════════════════════════════

elif page.startswith("Enquiry"):
    st.title("Enquiry List")

    if not len(enquiry):
        st.info("Your enquiry list is empty. Add medicines from the catalog.")
    else:
        for position, medicine in enumerate(enquiry.items):
            col_name, col_price, col_action = st.columns([3, 1, 1])
            with col_name:
                st.markdown(f"**{medicine.name}**")
                st.caption(f"{medicine.generic_name} · {_availability_label(medicine)}")
            with col_price:
                st.write(f"₹{medicine.price:,.2f}")
            with col_action:
                _enquiry_button(medicine, key=f"enquiry_{position}_{medicine.id}")

        st.divider()
        if st.button("Clear enquiry list"):
            enquiry.clear()
            st.rerun()


# ═══════════════════════════════════════════════════════════════════════════
# Page: Admin
# ═══════════════════════════════════════════════════════════════════════════

else:
    st.title("Catalog Admin")

    # ── Data source status ───────────────────────────────────────
    source = load_data_source(_secret_overrides())
    st.caption(f"Source: {build_sheet_url(source)}")

    metric_cols = st.columns(3)
    with metric_cols[0]:
        st.metric("Status", status.state.value.title())
    with metric_cols[1]:
        st.metric("Medicines", len(medicines))
    with metric_cols[2]:
        st.metric(
            "Last updated",
            f"{status.last_updated.astimezone():%Y-%m-%d %H:%M}" if status.last_updated else "Never",
        )

    if st.button("🔄 Force reload from sheet", type="primary"):
        with st.spinner("Fetching the catalog sheet..."):
            asyncio.run(catalog.refresh())
        st.rerun()

    st.dataframe(availability_summary(medicines), use_container_width=True, hide_index=True)

    # ── Header mapping ───────────────────────────────────────────
    st.divider()
    st.header("Header Mapping")

    report = catalog.mapping_report()
    st.dataframe(
        pd.DataFrame([
            {
                "Field": line.field_name,
                "Sheet Header": line.header or "",
                "Status": line.status,
                "Suggestion": (
                    f"{line.suggestion} ({line.suggestion_score})" if line.suggestion else ""
                ),
                "Aliases": ", ".join(line.aliases),
            }
            for line in report
        ]),
        use_container_width=True,
        hide_index=True,
    )

    leftover_headers = unmapped_headers(catalog.header_mapping)
    if leftover_headers:
        st.caption("Unmapped sheet headers: " + ", ".join(leftover_headers))

    # ── Normalization warnings ───────────────────────────────────
    warnings = catalog.warnings
    if warnings:
        with st.expander(f"⚠️ Normalization Warnings ({len(warnings)})"):
            st.dataframe(
                pd.DataFrame([
                    {
                        "Row": warning.row_index,
                        "Field": warning.field_name,
                        "Header": warning.header,
                        "Value": warning.original_value,
                        "Issue": warning.reason,
                    }
                    for warning in warnings
                ]),
                use_container_width=True,
                hide_index=True,
            )

    # ── Data preview ─────────────────────────────────────────────
    st.divider()
    st.header("Data Preview")

    st.subheader(f"Raw sheet rows (first {RAW_PREVIEW_ROWS})")
    st.dataframe(raw_preview_frame(medicines, RAW_PREVIEW_ROWS), use_container_width=True, hide_index=True)

    st.subheader("Normalized catalog")
    st.dataframe(catalog_frame(medicines), use_container_width=True, hide_index=True)
