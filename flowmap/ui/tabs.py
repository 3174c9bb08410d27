"""Logic for the main tabs (graph, sequence, data, systems)."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

import pandas as pd
import streamlit as st
import streamlit.components.v1 as components

from flowmap.animation import AmbientAnimator, EdgeParticles, StepPlayback, link_curve
from flowmap.config import CONFIG, GRAPH_CARD_HEIGHT
from flowmap.data_processing import (
    compute_centrality_measures,
    find_search_nodes,
    flows_dataframe,
    system_relationships,
    system_statistics,
)
from flowmap.graph_builder import build_graph_model
from flowmap.interaction import InteractionController
from flowmap.layout import LayoutEngine
from flowmap.models import EdgeKind, FlowRecord, GraphModel, NodeKind, ViewMode
from flowmap.sequence import build_flow_sequence
from flowmap.ui.sidebar import SidebarState
from flowmap.visualizer import build_graph, build_sequence_graph, create_legends


def _layout_key(state: SidebarState) -> Tuple:
    return (
        state.mode.value,
        tuple(flow.id for flow in state.flows),
        state.focus_system,
        int(st.session_state.layout_seed),
        bool(st.session_state.simulate_metrics),
    )


def _on_select_flow(flow: Optional[FlowRecord]) -> None:
    st.session_state.selected_flow_id = flow.id if flow is not None else None


def _on_select_system(system: Optional[str]) -> None:
    st.session_state.selected_system = system


def _graph_session(state: SidebarState) -> Dict:
    """Model, settled layout and controller for the current inputs, rebuilt when they change."""
    key = _layout_key(state)
    cache = st.session_state.layout_cache
    if cache.get("key") != key:
        model = build_graph_model(
            state.flows,
            state.systems,
            mode=state.mode,
            focus_system=state.focus_system,
            simulate_metrics=bool(st.session_state.simulate_metrics),
        )
        engine = LayoutEngine(model, seed=int(st.session_state.layout_seed))
        engine.run()
        controller = InteractionController(
            model,
            engine,
            flows=st.session_state.flows,
            on_select_flow=_on_select_flow,
            on_select_system=_on_select_system,
        )
        if cache.get("animator") is not None:
            cache["animator"].stop()
        cache = {
            "key": key,
            "model": model,
            "engine": engine,
            "controller": controller,
            "animator": AmbientAnimator(model.edges),
            "last_frame": time.time(),
        }
        st.session_state.layout_cache = cache
    return cache


def _edge_curves(model: GraphModel, positions) -> Dict:
    return {edge.id: link_curve(edge.kind, positions.get(edge.source), positions.get(edge.target)) for edge in model.edges}


def _render_graph_controls(session: Dict) -> None:
    model: GraphModel = session["model"]
    controller: InteractionController = session["controller"]
    engine: LayoutEngine = session["engine"]
    node_ids = model.node_ids()

    focus_col, pin_col = st.columns(2)
    with focus_col:
        target = st.selectbox("Node", node_ids, key="graph_focus_node") if node_ids else None
        if st.button("Select / Deselect", disabled=target is None):
            controller.click(target)
        if controller.focus_id:
            st.caption(f"Focused: {controller.focus_id}")
            if st.button("Clear focus"):
                controller.sync_selection(None, None)
                _on_select_flow(None)
                _on_select_system(None)
    with pin_col:
        with st.expander("Pin node position"):
            pin_target = st.selectbox("Node to pin", node_ids, key="pin_node") if node_ids else None
            x = st.number_input("x", value=float(engine.width / 2), key="pin_x")
            y = st.number_input("y", value=float(engine.height / 2), key="pin_y")
            c1, c2 = st.columns(2)
            if c1.button("Pin", disabled=pin_target is None):
                controller.drag_start(pin_target, (x, y))
                controller.drag_end(pin_target, (x, y))
                engine.run()
            if c2.button("Release all"):
                for node_id in node_ids:
                    engine.release(node_id)
                engine.restart(CONFIG["PHYSICS_DEFAULTS"]["alpha_start"])
                engine.run()


def render_graph_view(state: SidebarState) -> Optional[float]:
    st.header("Network Graph")
    if not state.flows:
        st.info("No flows loaded. Use the Data Source section in the sidebar.")
        return None

    try:
        with st.spinner("Computing layout..."):
            session = _graph_session(state)
    except Exception as exc:
        logging.error("Graph build failed: %s", exc)
        st.error(f"Graph generation failed: {exc}")
        return None

    model: GraphModel = session["model"]
    controller: InteractionController = session["controller"]
    engine: LayoutEngine = session["engine"]
    if model.mode is ViewMode.FOCUSED and model.focus_system is None:
        st.info("No focus system selected; showing the full overview.")

    if (
        st.session_state.selected_flow_id != controller.selection.selected_flow_id
        or st.session_state.selected_system != controller.selection.selected_system
    ):
        controller.sync_selection(st.session_state.selected_flow_id, st.session_state.selected_system)

    _render_graph_controls(session)
    snapshot = engine.snapshot()

    particles = None
    animator: AmbientAnimator = session["animator"]
    if st.session_state.animate_flows:
        now = time.time()
        particles = animator.advance(now - session["last_frame"], _edge_curves(model, snapshot.positions))
        session["last_frame"] = now

    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Nodes", len(model.nodes))
    m2.metric("Edges", len(model.edges))
    m3.metric("Flows", len(model.nodes_of_kind(NodeKind.FLOW)))
    m4.metric("Interfaces", len(model.nodes_of_kind(NodeKind.INTERFACE)))

    search_hits = find_search_nodes(model, st.session_state.search_term)
    if st.session_state.search_term.strip():
        st.caption(f"{len(search_hits)} nodes match '{st.session_state.search_term}'")

    try:
        net = build_graph(
            model,
            snapshot,
            controller.highlight,
            palette=state.palette,
            flows=st.session_state.flows,
            particles=particles,
            show_labels=st.session_state.show_labels,
        )
        components.html(net.html, height=GRAPH_CARD_HEIGHT, scrolling=False)
    except Exception as exc:
        st.error(f"Graph generation failed: {exc}")

    with st.expander("Legends", expanded=False):
        st.markdown(create_legends(model.mode, state.palette), unsafe_allow_html=True)
    if model.mode is ViewMode.TECHNICAL and st.session_state.simulate_metrics:
        st.caption("Latency and status figures in technical mode are simulated placeholders.")

    _render_selection_details(state)

    if st.session_state.animate_flows and animator.groups:
        return CONFIG["ANIMATION"]["ui_frame_interval"]
    return None


def _render_selection_details(state: SidebarState) -> None:
    flows: List[FlowRecord] = st.session_state.flows
    flow_id = st.session_state.selected_flow_id
    system = st.session_state.selected_system
    if flow_id:
        flow = next((f for f in flows if f.id == flow_id), None)
        if flow is None:
            return
        st.subheader(f"Flow {flow.id}: {flow.name}")
        st.write(f"{flow.source_system or '?'} → {flow.target_system or '?'} ({flow.format or 'Unknown'})")
        if flow.description:
            st.write(flow.description)
        st.json(flow.to_dict(), expanded=False)
    elif system:
        rel = system_relationships(flows, system)
        st.subheader(f"System {system}")
        c1, c2 = st.columns(2)
        c1.metric("Incoming", len(rel["incoming_flows"]))
        c2.metric("Outgoing", len(rel["outgoing_flows"]))
        st.dataframe(flows_dataframe(rel["flows"]), use_container_width=True, height=240)


def render_sequence_view(state: SidebarState) -> Optional[float]:
    st.header("Flow Sequence")
    if not state.flows:
        st.info("No flows to show.")
        return None
    ids = [flow.id for flow in state.flows]
    default = ids.index(st.session_state.selected_flow_id) if st.session_state.selected_flow_id in ids else 0
    flow_id = st.selectbox("Flow", ids, index=default, format_func=lambda i: f"{i} - {_flow_name(state.flows, i)}")
    flow = state.flows[ids.index(flow_id)]
    sequence = build_flow_sequence(flow)

    playback: Optional[StepPlayback] = st.session_state.get("playback")
    if playback is None or st.session_state.get("playback_flow") != flow.id:
        if playback is not None:
            playback.stop()
        playback = StepPlayback(sequence.step_count)
        st.session_state.playback = playback
        st.session_state.playback_flow = flow.id
        st.session_state.playback_time = time.time()

    c1, c2 = st.columns(2)
    if c1.button("Pause" if playback.playing else "Play", disabled=sequence.direct):
        playback.toggle()
        st.session_state.playback_time = time.time()
    if c2.button("Reset"):
        playback.reset()

    now = time.time()
    playback.advance(now - st.session_state.playback_time)
    st.session_state.playback_time = now
    st.progress(playback.progress, text=f"Step {playback.current_step} of {sequence.step_count}")

    particles = {}
    if playback.playing or st.session_state.animate_flows:
        for index, link in enumerate(sequence.links):
            source, target = sequence.node(link.source), sequence.node(link.target)
            curve = link_curve(EdgeKind.FLOW_TO_INTERFACE, (source.x, source.y), (target.x, target.y))
            group = EdgeParticles(curve)
            particles[index] = group.advance(now % group.period)

    try:
        net = build_sequence_graph(sequence, playback.current_step, state.palette, particles)
        components.html(net.html, height=440, scrolling=False)
    except Exception as exc:
        st.error(f"Sequence rendering failed: {exc}")

    for index, step in enumerate(flow.process_steps):
        marker = "✅" if sequence.step_completed(index, playback.current_step) else "⏳"
        st.write(f"{marker} {index + 1}. {step.step_type or 'step'} via {step.interface or '(no interface)'}")

    if playback.playing:
        return playback.interval
    return None


def _flow_name(flows: List[FlowRecord], flow_id: str) -> str:
    return next((flow.name for flow in flows if flow.id == flow_id), "")


def render_data_view(state: SidebarState) -> None:
    st.header("Data Flows")
    df = flows_dataframe(state.flows)
    st.dataframe(df, use_container_width=True, height=420)
    st.download_button(
        "Download CSV",
        df.to_csv(index=False).encode("utf-8"),
        file_name="flows.csv",
        mime="text/csv",
    )


@st.cache_data(show_spinner=False)
def _centrality(layout_key: Tuple, _model: GraphModel) -> Dict[str, Dict[str, float]]:
    return compute_centrality_measures(_model)


def render_systems_view(state: SidebarState) -> None:
    st.header("Systems")
    if not state.flows:
        st.info("No flows loaded.")
        return
    st.dataframe(system_statistics(state.flows), use_container_width=True, height=320)

    session = st.session_state.layout_cache
    model: Optional[GraphModel] = session.get("model")
    if model is None:
        return
    st.subheader("Centrality Measures")
    centrality = _centrality(session["key"], model)
    if not centrality:
        st.info("Graph is empty.")
        return
    df = pd.DataFrame.from_dict(centrality, orient="index").sort_values("pagerank", ascending=False)
    st.dataframe(df, use_container_width=True, height=320)


def render_tabs(state: SidebarState) -> None:
    tabs = st.tabs(["Graph View", "Flow Sequence", "Data View", "Systems", "About"])
    with tabs[0]:
        graph_delay = render_graph_view(state)
    with tabs[1]:
        sequence_delay = render_sequence_view(state)
    with tabs[2]:
        render_data_view(state)
    with tabs[3]:
        render_systems_view(state)
    with tabs[4]:
        st.header("About")
        st.markdown(
            """
            **Flow Map Explorer** renders a catalogue of inter-system data flows as an
            interactive network.

            - **Overview** stacks systems, interfaces and flows in three bands.
            - **Focused** keeps one system and the flows it takes part in.
            - **Technical** traces every flow through its process steps.
            """
        )

    # Animated views ask for a follow-up run; schedule the soonest one once all tabs are drawn.
    delays = [delay for delay in (graph_delay, sequence_delay) if delay]
    if delays:
        time.sleep(min(delays))
        st.rerun()
