"""PyVis rendering of a built graph, a layout snapshot and the current highlight."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from pyvis.network import Network

from flowmap.config import APP_FONTS, CONFIG, GRAPH_CANVAS_HEIGHT, GRAPH_CARD_HEIGHT, UNKNOWN_FORMAT, VIS_FONT_FACE
from flowmap.highlight import NEUTRAL, Emphasis, HighlightState
from flowmap.interaction import edge_tooltip, node_tooltip
from flowmap.layout import LayoutSnapshot
from flowmap.models import EdgeKind, FlowNode, FlowRecord, GraphEdge, GraphModel, GraphNode, NodeKind, ViewMode
from flowmap.sequence import FlowSequence
from flowmap.utils import (
    _blend_hex,
    _hex_to_rgb,
    _make_edge_color,
    _make_node_color,
    _pick_label_color,
    _truncate_text,
    format_color,
    step_color,
    system_color,
)

Point = Tuple[float, float]

_NODE_OPACITY = {
    Emphasis.SELECTED: 1.0,
    Emphasis.CONNECTED: 1.0,
    Emphasis.NEUTRAL: 0.95,
    Emphasis.DIMMED: 0.2,
}
_EDGE_OPACITY = {
    Emphasis.SELECTED: 1.0,
    Emphasis.CONNECTED: 1.0,
    Emphasis.NEUTRAL: 0.6,
    Emphasis.DIMMED: 0.1,
}


def _hex_to_rgba(hex_color: str, alpha: float) -> str:
    r, g, b = _hex_to_rgb(hex_color)
    return f"rgba({r}, {g}, {b}, {alpha})"


def _node_radius(node: GraphNode, mode: ViewMode) -> int:
    sizes = CONFIG["NODE_RADIUS"]["technical" if mode is ViewMode.TECHNICAL else "overview"]
    if isinstance(node, FlowNode) and node.metrics is not None and node.metrics.has_error:
        return sizes.get("flow_error", sizes["flow"])
    return sizes[node.kind.value]


def node_base_color(node: GraphNode, palette: Optional[Dict[str, str]] = None) -> str:
    if node.kind is NodeKind.SYSTEM:
        return system_color(node.id, palette)
    if node.kind is NodeKind.INTERFACE:
        return CONFIG["INTERFACE_COLOR"]
    return format_color(node.format)


def node_label(node: GraphNode, mode: ViewMode) -> str:
    if isinstance(node, FlowNode):
        if mode is ViewMode.TECHNICAL:
            return f"{node.display_id}\n{node.format or UNKNOWN_FORMAT}"
        return node.display_id
    return _truncate_text(node.id, 28)


def add_node(
    net: Network,
    node: GraphNode,
    mode: ViewMode,
    position: Optional[Point],
    emphasis: Emphasis = Emphasis.NEUTRAL,
    title: str = "",
    palette: Optional[Dict[str, str]] = None,
    show_labels: bool = True,
) -> None:
    color = node_base_color(node, palette)
    opacity = _NODE_OPACITY[emphasis]
    node_color = _make_node_color(color)
    if isinstance(node, FlowNode) and node.metrics is not None and node.metrics.has_error:
        node_color["border"] = CONFIG["STEP_TYPE_COLORS"]["delivery"]
    label_color = _pick_label_color(color)

    payload: Dict[str, Any] = {
        "label": node_label(node, mode) if show_labels else "",
        "title": title,
        "color": node_color,
        "shape": CONFIG["NODE_SHAPES"][node.kind.value],
        "size": _node_radius(node, mode),
        "opacity": opacity,
        "font": {
            "size": 14 if node.kind is NodeKind.SYSTEM else 12,
            "face": VIS_FONT_FACE,
            "color": _hex_to_rgba(label_color, opacity),
            "strokeWidth": 2,
            "strokeColor": "rgba(248, 250, 252, 0.9)",
        },
        "borderWidth": 3 if emphasis is Emphasis.SELECTED else 1,
        "kind": node.kind.value,
        "emphasis": emphasis.value,
        "physics": False,
    }
    if node.level is not None:
        payload["level"] = node.level
    if position is not None and all(math.isfinite(v) for v in position):
        payload["x"], payload["y"] = position
        payload["fixed"] = True

    net.add_node(node.id, **payload)
    logging.debug("Added node: %s (%s) with color %s", node.id, node.kind.value, color)


def edge_base_color(edge: GraphEdge, mode: ViewMode) -> str:
    if mode is ViewMode.TECHNICAL:
        if edge.kind in (EdgeKind.SYSTEM_TO_FLOW, EdgeKind.FLOW_TO_SYSTEM):
            return format_color(edge.flow.format if edge.flow else None, CONFIG["DEFAULT_LINK_COLOR"])
        return step_color(edge.step_type)
    return CONFIG["EDGE_KIND_COLORS"].get(edge.kind.value, CONFIG["DEFAULT_LINK_COLOR"])


def add_edge(
    net: Network,
    edge: GraphEdge,
    mode: ViewMode,
    emphasis: Emphasis = Emphasis.NEUTRAL,
    title: str = "",
) -> None:
    base = edge_base_color(edge, mode)
    if emphasis is Emphasis.SELECTED:
        base = _blend_hex(base, "#0F172A", 0.2)
    width = edge.weight * (2 if edge.kind is EdgeKind.SYSTEM_TO_SYSTEM else 1.5)
    if emphasis is Emphasis.SELECTED:
        width += 1.5
    if edge.kind is EdgeKind.SYSTEM_TO_SYSTEM:
        smooth = {"enabled": True, "type": "curvedCW", "roundness": 0.2}
    else:
        smooth = {"enabled": True, "type": "curvedCW", "roundness": 0.05}

    net.add_edge(
        edge.source,
        edge.target,
        id=edge.id,
        kind=edge.kind.value,
        title=title,
        color=_make_edge_color(base, _EDGE_OPACITY[emphasis]),
        width=max(1.0, width),
        dashes=CONFIG["EDGE_DASHES"][edge.style.value],
        arrows={"to": {"enabled": True, "scaleFactor": 0.5}},
        smooth=smooth,
        emphasis=emphasis.value,
    )
    logging.debug("Added edge: %s", edge.id)


def add_particles(net: Network, particles: Mapping[str, Sequence[Point]], model: GraphModel) -> int:
    """Draw one frame of travelling particles as small fixed dots."""
    added = 0
    for edge_id, points in particles.items():
        edge = model.edge(edge_id)
        color = format_color(edge.flow.format if edge and edge.flow else None, CONFIG["DEFAULT_LINK_COLOR"])
        for i, (x, y) in enumerate(points):
            if not (math.isfinite(x) and math.isfinite(y)):
                continue
            net.add_node(
                f"particle:{edge_id}:{i}",
                label="",
                shape="dot",
                size=3,
                color=color,
                x=x,
                y=y,
                fixed=True,
                physics=False,
                kind="particle",
            )
            added += 1
    return added


def graph_options(mode: ViewMode) -> Dict[str, Any]:
    # Positions come from LayoutEngine; vis physics stays off.
    low, high = CONFIG["ZOOM_EXTENT"]
    return {
        "nodes": {
            "font": {"face": VIS_FONT_FACE, "color": "#1F2A37"},
            "shadow": {"enabled": True, "color": "rgba(31, 42, 55, 0.12)", "size": 8, "x": 0, "y": 2},
        },
        "edges": {"selectionWidth": 2.4, "hoverWidth": 2.8},
        "physics": {"enabled": False},
        "interaction": {
            "hover": True,
            "hoverConnectedEdges": True,
            "navigationButtons": True,
            "zoomView": True,
            "dragNodes": True,
            "tooltipDelay": 120,
        },
        "flowmap": {"mode": mode.value, "zoomExtent": [low, high]},
    }


def graph_css_block() -> str:
    return f"""
    <style>
      html, body {{
          margin: 0;
          padding: 0;
          font-family: '{APP_FONTS["body"]}', sans-serif;
          background: transparent;
      }}
      #mynetwork {{
          background-color: {CONFIG["DEFAULT_PALETTE"]["background"]} !important;
          border: 1px solid rgba(33, 52, 71, 0.08) !important;
          border-radius: 16px !important;
          height: 100% !important;
          width: 100% !important;
      }}
      .card {{
          height: {GRAPH_CARD_HEIGHT}px;
          border: none;
      }}
      .vis-tooltip {{
          white-space: pre-line !important;
          max-width: 360px;
          font-family: '{APP_FONTS["body"]}', sans-serif;
          color: #1F2A37;
          background: rgba(255, 255, 255, 0.98);
          border: 1px solid rgba(61, 90, 128, 0.2);
          border-radius: 10px;
          padding: 8px 12px;
      }}
    </style>
    """


def build_graph(
    model: GraphModel,
    snapshot: Optional[LayoutSnapshot] = None,
    highlight: HighlightState = NEUTRAL,
    palette: Optional[Dict[str, str]] = None,
    flows: Optional[Sequence[FlowRecord]] = None,
    particles: Optional[Mapping[str, Sequence[Point]]] = None,
    show_labels: bool = True,
) -> Network:
    net = Network(
        height=f"{GRAPH_CANVAS_HEIGHT}px",
        width="100%",
        directed=True,
        notebook=False,
        bgcolor="transparent",
        font_color="#1F2A37",
    )
    flows = list(flows) if flows is not None else model.flows()
    positions = snapshot.positions if snapshot is not None else {}

    for node in model.nodes:
        add_node(
            net,
            node,
            model.mode,
            positions.get(node.id),
            highlight.emphasis_of(node.id),
            node_tooltip(node, model.mode, flows),
            palette,
            show_labels,
        )
    for edge in model.edges:
        if model.node(edge.source) is None or model.node(edge.target) is None:
            logging.debug("Skipping edge %s with a missing endpoint", edge.id)
            continue
        add_edge(net, edge, model.mode, highlight.edge_emphasis(edge.id), edge_tooltip(edge, model.mode))
    if particles:
        add_particles(net, particles, model)

    net.options = graph_options(model.mode)
    html = net.generate_html()
    net.html = html.replace("</head>", graph_css_block() + "</head>", 1)
    return net


def build_sequence_graph(
    sequence: FlowSequence,
    current_step: int = 0,
    palette: Optional[Dict[str, str]] = None,
    particles: Optional[Mapping[int, Sequence[Point]]] = None,
) -> Network:
    """Left-to-right diagram of one flow; links up to ``current_step`` are drawn as completed."""
    net = Network(height="420px", width="100%", directed=True, notebook=False, bgcolor="transparent")
    flow_color = format_color(sequence.flow.format, CONFIG["DEFAULT_LINK_COLOR"])
    for node in sequence.nodes:
        base = system_color(node.label, palette) if node.kind is NodeKind.SYSTEM else CONFIG["INTERFACE_COLOR"]
        title = node.label
        if node.steps:
            title += "\n" + "\n".join(f"{step.step_type or 'step'}" for step in node.steps)
        net.add_node(
            node.key,
            label=_truncate_text(node.label, 28),
            title=title,
            shape=CONFIG["NODE_SHAPES"][node.kind.value],
            color=_make_node_color(base),
            x=node.x,
            y=node.y,
            fixed=True,
            physics=False,
        )
    for index, link in enumerate(sequence.links):
        done = sequence.step_completed(link.step_index, current_step)
        base = step_color(link.step_type) if done else flow_color
        net.add_edge(
            link.source,
            link.target,
            id=f"seq-{index}",
            title=f"{link.step_type} ({link.format or UNKNOWN_FORMAT})",
            color=_make_edge_color(base, 1.0 if done else 0.6),
            width=4 if done else 3,
            arrows={"to": {"enabled": True, "scaleFactor": 0.6}},
            smooth={"enabled": True, "type": "curvedCW", "roundness": 0.1},
        )
    for index, points in (particles or {}).items():
        for i, (x, y) in enumerate(points):
            net.add_node(
                f"particle:seq-{index}:{i}",
                label="",
                shape="dot",
                size=3,
                color=flow_color,
                x=x,
                y=y,
                fixed=True,
                physics=False,
            )
    net.options = {"physics": {"enabled": False}, "interaction": {"hover": True, "zoomView": False}}
    html = net.generate_html()
    net.html = html.replace("</head>", graph_css_block() + "</head>", 1)
    return net


def _legend_items(entries: Mapping[str, str]) -> str:
    return "".join(
        f"<div class='legend-item'><span class='legend-swatch' style='background:{color};'></span>"
        f"<span>{label}</span></div>"
        for label, color in entries.items()
    )


def create_legends(mode: ViewMode, palette: Optional[Dict[str, str]] = None) -> str:
    system_entries = {rule["label"]: system_color(rule["markers"][0], palette) for rule in CONFIG["SYSTEM_RULES"]}
    system_entries[CONFIG["DEFAULT_SYSTEM_GROUP"]["label"]] = system_color(None, palette)
    system_entries["Interface"] = CONFIG["INTERFACE_COLOR"]
    if ViewMode.parse(mode) is ViewMode.TECHNICAL:
        link_entries = {name.replace("-", " ").title(): color for name, color in CONFIG["STEP_TYPE_COLORS"].items()}
        link_title = "Process Steps"
    else:
        link_entries = {EdgeKind(kind).label.title(): color for kind, color in CONFIG["EDGE_KIND_COLORS"].items()}
        link_title = "Connections"
    return (
        "<div class='legend-wrap'>"
        "<div class='legend-card'>"
        "<div class='legend-title'>Systems</div>"
        f"<div class='legend-grid legend-grid-tight'>{_legend_items(system_entries)}</div>"
        "</div>"
        "<div class='legend-card'>"
        "<div class='legend-title'>Formats</div>"
        f"<div class='legend-grid legend-grid-tight'>{_legend_items(CONFIG['FORMAT_COLORS'])}</div>"
        "</div>"
        "<div class='legend-card'>"
        f"<div class='legend-title'>{link_title}</div>"
        f"<div class='legend-grid'>{_legend_items(link_entries)}</div>"
        "</div>"
        "</div>"
    )
