"""Sidebar logic and session state initialization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, MutableMapping, Optional

import streamlit as st

from flowmap.api import (
    fetch_data_flows,
    fetch_formats,
    fetch_systems,
    fetch_transmission_methods,
    query_natural_language,
)
from flowmap.config import CONFIG
from flowmap.data_processing import (
    FILTER_FIELDS,
    filter_flows,
    load_flows_from_json,
    parse_flow_records,
    parse_system_names,
    search_flows,
    unique_values,
)
from flowmap.models import FlowRecord, ViewMode
from flowmap.utils import coerce_palette

_FILTER_LABELS = {
    "source_system": "Source System",
    "target_system": "Target System",
    "format": "Format",
    "transmission_method": "Transmission Method",
}
_ALL = "All"


@dataclass
class SidebarState:
    mode: ViewMode
    flows: List[FlowRecord]
    systems: List[str]
    focus_system: Optional[str]
    palette: Dict[str, str]


def init_session_state() -> None:
    if "flows" not in st.session_state:
        st.session_state.flows = []
    if "systems" not in st.session_state:
        st.session_state.systems = []
    if "formats" not in st.session_state:
        st.session_state.formats = []
    if "transmission_methods" not in st.session_state:
        st.session_state.transmission_methods = []
    if "view_mode" not in st.session_state:
        st.session_state.view_mode = ViewMode.OVERVIEW.value
    if "selected_flow_id" not in st.session_state:
        st.session_state.selected_flow_id = None
    if "selected_system" not in st.session_state:
        st.session_state.selected_system = None
    if "search_term" not in st.session_state:
        st.session_state.search_term = ""
    if "flow_filters" not in st.session_state:
        st.session_state.flow_filters = {name: None for name in FILTER_FIELDS}
    if "query_result" not in st.session_state:
        st.session_state.query_result = None
    if "show_labels" not in st.session_state:
        st.session_state.show_labels = True
    if "animate_flows" not in st.session_state:
        st.session_state.animate_flows = False
    if "simulate_metrics" not in st.session_state:
        st.session_state.simulate_metrics = True
    if "layout_seed" not in st.session_state:
        st.session_state.layout_seed = 23
    if "palette" not in st.session_state:
        st.session_state.palette = coerce_palette(None)
    if "layout_cache" not in st.session_state:
        st.session_state.layout_cache = {}


def _load_from_api() -> None:
    try:
        flows = parse_flow_records(fetch_data_flows())
        systems = parse_system_names(fetch_systems())
        formats = fetch_formats()
        methods = fetch_transmission_methods()
    except RuntimeError as exc:
        st.sidebar.error(f"Loading from API failed: {exc}")
        return
    st.session_state.flows = flows
    st.session_state.systems = systems
    st.session_state.formats = formats if isinstance(formats, list) else []
    st.session_state.transmission_methods = methods if isinstance(methods, list) else []
    st.session_state.layout_cache = {}
    st.sidebar.success(f"Loaded {len(flows)} flows and {len(systems)} systems.")


def _render_data_source() -> None:
    with st.sidebar.expander("Data Source", expanded=not st.session_state.flows):
        st.caption(f"API: {CONFIG['API_BASE_URL']}")
        if st.button("Load from API"):
            _load_from_api()
        uploaded = st.file_uploader("Or upload a flow catalogue", type=["json"], key="flow_upload")
        if uploaded is not None and st.session_state.get("upload_name") != uploaded.name:
            try:
                flows = load_flows_from_json(uploaded.getvalue().decode("utf-8"))
            except (ValueError, UnicodeDecodeError) as exc:
                st.error(f"Could not read {uploaded.name}: {exc}")
            else:
                st.session_state.upload_name = uploaded.name
                st.session_state.flows = flows
                st.session_state.systems = []
                st.session_state.layout_cache = {}
                st.success(f"Loaded {len(flows)} flows from {uploaded.name}.")


def apply_focus_choice(session: MutableMapping, choice: Optional[str]) -> None:
    """Choosing a focus system also selects it, which clears any flow selection."""
    if choice is None or session.get("selected_system") == choice:
        return
    session["selected_system"] = choice
    session["selected_flow_id"] = None


def _render_mode(systems: List[str]) -> Optional[str]:
    with st.sidebar.expander("View Mode", expanded=True):
        modes = [mode.value for mode in ViewMode]
        st.radio(
            "Mode",
            modes,
            key="view_mode",
            format_func=str.title,
            horizontal=True,
            help="Overview: all systems. Focused: one system and its partners. Technical: process-step detail.",
        )
        if ViewMode.parse(st.session_state.view_mode) is not ViewMode.FOCUSED:
            return None
        if not systems:
            st.info("Load data to choose a focus system.")
            return None
        options = [None] + systems
        current = st.session_state.selected_system if st.session_state.selected_system in systems else None
        choice = st.selectbox(
            "Focus system",
            options,
            index=options.index(current),
            format_func=lambda value: "(none)" if value is None else value,
        )
        apply_focus_choice(st.session_state, choice)
        return choice


def _render_filters(flows: List[FlowRecord]) -> List[FlowRecord]:
    with st.sidebar.expander("Filters"):
        criteria = {}
        for name in FILTER_FIELDS:
            options = [_ALL] + unique_values(flows, name)
            choice = st.selectbox(_FILTER_LABELS[name], options, key=f"filter_{name}")
            criteria[name] = None if choice == _ALL else choice
        st.session_state.flow_filters = criteria
        return filter_flows(flows, **criteria)


def _render_search(flows: List[FlowRecord]) -> List[FlowRecord]:
    with st.sidebar.expander("Search"):
        st.text_input("Search flows", key="search_term", help="Matches id, name, systems, format and interfaces.")
        question = st.text_input("Ask the catalogue", key="nl_query")
        if st.button("Run Query") and question.strip():
            try:
                st.session_state.query_result = query_natural_language(question.strip())
            except RuntimeError as exc:
                st.error(f"Query failed: {exc}")
        result = st.session_state.query_result
        if result:
            st.write(result["natural_response"])
            st.caption(f"{result['count']} direct results for '{result['query']}'")
    return search_flows(flows, st.session_state.search_term)


def _render_display() -> Dict[str, str]:
    with st.sidebar.expander("Display"):
        st.checkbox("Show Node Labels", key="show_labels")
        st.checkbox("Animate Data Flows", key="animate_flows")
        st.checkbox(
            "Simulated diagnostics (technical mode)",
            key="simulate_metrics",
            help="Latency and status values in technical mode are illustrative placeholders.",
        )
        st.number_input("Layout seed", min_value=0, max_value=10_000, step=1, key="layout_seed")
        palette = dict(st.session_state.palette)
        cols = st.columns(2)
        for i, slot in enumerate(("primary", "secondary", "tertiary", "accent1", "accent2")):
            palette[slot] = cols[i % 2].color_picker(slot.title(), palette[slot], key=f"palette_{slot}")
        st.session_state.palette = coerce_palette(palette)
        return st.session_state.palette


def render_sidebar() -> SidebarState:
    _render_data_source()
    all_flows: List[FlowRecord] = st.session_state.flows
    system_names = list(st.session_state.systems)
    for flow in all_flows:
        for name in (flow.source_id, flow.target_id):
            if name not in system_names:
                system_names.append(name)

    focus_system = _render_mode(system_names)
    flows = _render_filters(all_flows)
    flows = _render_search(flows)
    palette = _render_display()

    st.sidebar.caption(f"{len(flows)} of {len(all_flows)} flows shown")
    return SidebarState(
        mode=ViewMode.parse(st.session_state.view_mode),
        flows=flows,
        systems=list(st.session_state.systems),
        focus_system=focus_system,
        palette=palette,
    )
