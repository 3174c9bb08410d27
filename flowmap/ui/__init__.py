"""Streamlit application shell."""

from __future__ import annotations


def render_app() -> None:
    import streamlit as st

    # set_page_config() must run before any other streamlit command
    st.set_page_config(page_title="Flow Map Explorer", layout="wide")

    from flowmap.config import APP_FONTS
    from flowmap.ui.sidebar import init_session_state, render_sidebar
    from flowmap.ui.tabs import render_tabs

    st.markdown(
        f"""
        <style>
        :root {{
            --ink-1: #1F2A37;
            --ink-3: #64748B;
            --accent-1: #C63441;
            --panel-border: rgba(30, 42, 53, 0.1);
            --font-display: '{APP_FONTS["display"]}', serif;
            --font-body: '{APP_FONTS["body"]}', sans-serif;
        }}
        html, body, [class*="css"] {{
            font-family: var(--font-body);
            color: var(--ink-1);
        }}
        h1, h2, h3 {{
            font-family: var(--font-display);
        }}
        .legend-wrap {{
            display: flex;
            flex-wrap: wrap;
            gap: 12px;
        }}
        .legend-card {{
            border: 1px solid var(--panel-border);
            border-radius: 12px;
            padding: 8px 12px;
        }}
        .legend-title {{
            font-weight: 600;
            margin-bottom: 6px;
        }}
        .legend-grid {{
            display: grid;
            grid-template-columns: repeat(2, minmax(0, 1fr));
            gap: 4px 12px;
        }}
        .legend-grid-tight {{
            grid-template-columns: repeat(3, minmax(0, 1fr));
        }}
        .legend-item {{
            display: flex;
            align-items: center;
            gap: 6px;
            font-size: 0.85rem;
            color: var(--ink-3);
        }}
        .legend-swatch {{
            width: 12px;
            height: 12px;
            border-radius: 3px;
            display: inline-block;
        }}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.title("Flow Map Explorer")

    with st.expander("Quick Start"):
        st.write("1. Load flows from the catalogue API or upload a JSON file in the sidebar.")
        st.write("2. Pick a view mode: overview, focused (one system) or technical.")
        st.write("3. Narrow the catalogue with filters or the search box.")
        st.write("4. Select a node to highlight its connections and show details.")
        st.write("5. Replay a single flow step by step in the **Flow Sequence** tab.")

    init_session_state()
    sidebar_state = render_sidebar()
    render_tabs(sidebar_state)
