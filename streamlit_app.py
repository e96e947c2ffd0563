"""Streamlit interface for reviewing city linkage results and drafting overrides."""
from __future__ import annotations

from pathlib import Path

import pandas as pd
import streamlit as st

from linkage.outputs import load_outputs
from linkage.review import count_by, filter_by_categories, override_template, search_names

st.set_page_config(page_title="City linkage review", layout="wide")

TABLE_LABELS = {
    "linked": "Linked pairs",
    "ambiguous": "Ambiguous candidates",
    "source_residual": "Unmatched sources",
    "target_residual": "Unmatched targets",
    "removed": "Removed by rules",
    "rule_outcomes": "Rule views",
}
CATEGORY_COLUMNS = {
    "linked": ["provenance"],
    "source_residual": ["reason"],
    "target_residual": ["reason"],
    "removed": ["rule"],
    "rule_outcomes": ["rule", "status"],
}


@st.cache_data
def read_outputs(out_dir: str) -> dict[str, pd.DataFrame]:
    return load_outputs(Path(out_dir))


def sidebar_controls(frames: dict[str, pd.DataFrame]) -> dict:
    available = [key for key in TABLE_LABELS if key in frames]
    table = st.sidebar.selectbox("Table", available, format_func=lambda key: TABLE_LABELS[key])
    df = frames[table]
    filters = {}
    st.sidebar.subheader("Filters")
    for column in CATEGORY_COLUMNS.get(table, []):
        if column in df.columns:
            filters[column] = st.sidebar.multiselect(column, sorted(df[column].unique()))
    search = st.sidebar.text_input("Name contains")
    return {"table": table, "filters": filters, "search": search}


def main() -> None:
    st.title("City linkage review")
    out_dir = st.sidebar.text_input("Output directory", value="data/output")
    try:
        frames = read_outputs(out_dir)
    except FileNotFoundError as exc:
        st.warning(str(exc))
        return
    if not frames:
        st.info("No linkage outputs found. Run match_cities.py first.")
        return

    controls = sidebar_controls(frames)
    df = frames[controls["table"]]
    view = search_names(filter_by_categories(df, controls["filters"]), controls["search"])

    st.subheader(f"{TABLE_LABELS[controls['table']]}: {len(view)} of {len(df)} rows")
    for column in CATEGORY_COLUMNS.get(controls["table"], []):
        st.dataframe(count_by(df, column), hide_index=True)
    st.dataframe(view, use_container_width=True, hide_index=True)

    st.subheader("Override template")
    template = override_template(
        frames.get("ambiguous", pd.DataFrame()),
        frames.get("source_residual", pd.DataFrame()),
    )
    st.caption(f"{len(template)} sources awaiting a manual decision")
    st.dataframe(template, use_container_width=True, hide_index=True)
    st.download_button(
        "Download override template",
        template.to_csv(index=False).encode("utf-8"),
        file_name="override_template.csv",
        mime="text/csv",
    )


main()
