"""Pointer gestures: pan/zoom, drag-to-pin, click selection and hover tooltips."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple

from flowmap.config import CONFIG, UNKNOWN_FORMAT
from flowmap.data_processing import flows_using_interface
from flowmap.highlight import NEUTRAL, HighlightState, SelectionHighlighter
from flowmap.layout import LayoutEngine
from flowmap.models import (
    FlowNode,
    FlowRecord,
    GraphEdge,
    GraphModel,
    GraphNode,
    InterfaceNode,
    NodeKind,
    ViewMode,
    flow_node_id,
)
from flowmap.utils import _finite

Point = Tuple[float, float]


@dataclass(frozen=True)
class ViewTransform:
    x: float = 0.0
    y: float = 0.0
    k: float = 1.0

    def apply(self, point: Point) -> Point:
        return (self.x + self.k * point[0], self.y + self.k * point[1])

    def invert(self, point: Point) -> Point:
        return ((point[0] - self.x) / self.k, (point[1] - self.y) / self.k)


@dataclass(frozen=True)
class Tooltip:
    text: str = ""
    x: float = 0.0
    y: float = 0.0
    visible: bool = False


HIDDEN_TOOLTIP = Tooltip()


@dataclass(frozen=True)
class SelectionState:
    """At most one of flow or system is selected at any time."""

    selected_flow_id: Optional[str] = None
    selected_system: Optional[str] = None

    def select_flow(self, flow_id: Optional[str]) -> "SelectionState":
        if flow_id is None:
            return replace(self, selected_flow_id=None)
        return SelectionState(selected_flow_id=flow_id, selected_system=None)

    def select_system(self, system: Optional[str]) -> "SelectionState":
        if system is None:
            return replace(self, selected_system=None)
        return SelectionState(selected_flow_id=None, selected_system=system)


def _noop(_value) -> None:
    return None


class InteractionController:
    """Owns the view transform, focus, selection and tooltip for one graph view.

    ``on_select_flow`` receives a ``FlowRecord`` or ``None``; ``on_select_system``
    receives a system id or ``None``. Interfaces can hold focus but are never
    reported as a selection.
    """

    def __init__(
        self,
        model: GraphModel,
        engine: Optional[LayoutEngine] = None,
        flows: Optional[Sequence[FlowRecord]] = None,
        on_select_flow: Callable[[Optional[FlowRecord]], None] = _noop,
        on_select_system: Callable[[Optional[str]], None] = _noop,
    ) -> None:
        self.model = model
        self.engine = engine
        self.flows: List[FlowRecord] = list(flows) if flows is not None else model.flows()
        self.on_select_flow = on_select_flow
        self.on_select_system = on_select_system
        self.highlighter = SelectionHighlighter(model)
        self.transform = ViewTransform()
        self.selection = SelectionState()
        self.highlight: HighlightState = NEUTRAL
        self.tooltip: Tooltip = HIDDEN_TOOLTIP
        self._dragged: Optional[str] = None

    @property
    def focus_id(self) -> Optional[str]:
        return self.highlight.focus_id

    # ------------------------------
    # Pan / zoom
    # ------------------------------

    def pan(self, dx: float, dy: float) -> ViewTransform:
        if _finite(dx, dy):
            self.transform = replace(self.transform, x=self.transform.x + dx, y=self.transform.y + dy)
        return self.transform

    def zoom_by(self, factor: float, anchor: Point = (0.0, 0.0)) -> ViewTransform:
        """Scale around ``anchor`` (screen coordinates), clamped to the zoom extent."""
        if not _finite(factor, *anchor) or factor <= 0:
            return self.transform
        low, high = CONFIG["ZOOM_EXTENT"]
        k = min(high, max(low, self.transform.k * factor))
        wx, wy = self.transform.invert(anchor)
        self.transform = ViewTransform(x=anchor[0] - k * wx, y=anchor[1] - k * wy, k=k)
        return self.transform

    def reset_view(self) -> ViewTransform:
        self.transform = ViewTransform()
        return self.transform

    # ------------------------------
    # Drag
    # ------------------------------

    def drag_start(self, node_id: str, point: Point) -> bool:
        if self.engine is None or self.model.node(node_id) is None or not _finite(*point):
            return False
        world = self.transform.invert(point)
        if not _finite(*world):
            return False
        self.engine.begin_drag()
        self._dragged = node_id
        return self.engine.pin(node_id, *world)

    def drag_move(self, node_id: str, point: Point) -> bool:
        if self.engine is None or node_id != self._dragged:
            return False
        return self.engine.pin(node_id, *self.transform.invert(point))

    def drag_end(self, node_id: str, point: Optional[Point] = None) -> None:
        if self.engine is None or node_id != self._dragged:
            return
        if point is not None:
            self.engine.pin(node_id, *self.transform.invert(point))
        self.engine.end_drag()
        self._dragged = None

    # ------------------------------
    # Selection
    # ------------------------------

    def _set_flow(self, flow: Optional[FlowRecord]) -> None:
        self.selection = self.selection.select_flow(flow.id if flow is not None else None)
        self.on_select_flow(flow)

    def _set_system(self, system: Optional[str]) -> None:
        self.selection = self.selection.select_system(system)
        self.on_select_system(system)

    def click(self, node_id: str) -> HighlightState:
        node = self.model.node(node_id)
        if node is None:
            logging.debug("Ignoring click on unknown node %s", node_id)
            return self.highlight
        again = node.id == self.focus_id

        if node.kind is NodeKind.SYSTEM:
            if again:
                self.highlight = NEUTRAL
                self._set_system(None)
            else:
                self.highlight = self.highlighter.focus(node.id)
                self._set_system(node.id)
                self._set_flow(None)
        elif node.kind is NodeKind.INTERFACE:
            if again:
                self.highlight = NEUTRAL
            else:
                self.highlight = self.highlighter.focus(node.id)
                users = flows_using_interface(self.flows, node.id)
                self._set_system(None)
                self._set_flow(users[0] if len(users) == 1 else None)
        else:
            if again:
                self.highlight = NEUTRAL
                self._set_flow(None)
            else:
                self.highlight = self.highlighter.focus(node.id)
                self._set_flow(node.flow)
                self._set_system(None)
        return self.highlight

    def sync_selection(
        self, selected_flow_id: Optional[str] = None, selected_system: Optional[str] = None
    ) -> HighlightState:
        """Mirror a selection made elsewhere (table, sidebar) without firing callbacks."""
        if selected_flow_id:
            self.selection = SelectionState(selected_flow_id=selected_flow_id)
            self.highlight = self.highlighter.focus(flow_node_id(selected_flow_id))
        elif selected_system:
            self.selection = SelectionState(selected_system=selected_system)
            self.highlight = self.highlighter.focus(selected_system)
        else:
            self.selection = SelectionState()
            self.highlight = NEUTRAL
        return self.highlight

    # ------------------------------
    # Hover
    # ------------------------------

    def _place(self, text: str, pointer: Point) -> Tooltip:
        if not text or not _finite(*pointer):
            self.tooltip = HIDDEN_TOOLTIP
            return self.tooltip
        dx, dy = CONFIG["TOOLTIP_OFFSET"]
        self.tooltip = Tooltip(text=text, x=pointer[0] + dx, y=pointer[1] + dy, visible=True)
        return self.tooltip

    def hover_node(self, node_id: str, pointer: Point) -> Tooltip:
        node = self.model.node(node_id)
        return self._place(node_tooltip(node, self.model.mode, self.flows) if node else "", pointer)

    def hover_edge(self, edge_id: str, pointer: Point) -> Tooltip:
        edge = self.model.edge(edge_id)
        return self._place(edge_tooltip(edge, self.model.mode) if edge else "", pointer)

    def hover_end(self) -> Tooltip:
        self.tooltip = HIDDEN_TOOLTIP
        return self.tooltip


def _route(flow: Optional[FlowRecord]) -> str:
    if flow is None:
        return "? → ?"
    return f"{flow.source_system or '?'} → {flow.target_system or '?'}"


def node_tooltip(node: GraphNode, mode: ViewMode, flows: Sequence[FlowRecord]) -> str:
    """Plain-text hover text; technical mode is more detailed."""
    technical = ViewMode.parse(mode) is ViewMode.TECHNICAL
    if node.kind is NodeKind.SYSTEM:
        count = sum(1 for flow in flows if node.id in (flow.source_id, flow.target_id))
        if technical:
            return "\n".join([node.id, "Type: System", "Status: Operational", f"Connected Flows: {count}"])
        return f"System: {node.id}\nConnected with {count} flows"

    if isinstance(node, InterfaceNode):
        users = flows_using_interface(flows, node.id)
        if technical:
            step_types = []
            for flow in users:
                for step in flow.process_steps:
                    if step.interface == node.id and step.step_type not in step_types:
                        step_types.append(step.step_type)
            return "\n".join(
                [
                    node.id,
                    "Type: Interface",
                    f"Step Types: {', '.join(t for t in step_types if t) or 'None'}",
                    f"Used In: {len(users)} data flows",
                ]
            )
        return f"Interface: {node.id}\nUsed in {len(users)} data flows"

    if not isinstance(node, FlowNode):
        return node.id

    fmt = node.format or UNKNOWN_FORMAT
    if technical:
        metrics = node.metrics
        lines = [
            f"{node.display_id} ({fmt})",
            f"Name: {node.name or 'Unnamed Flow'}",
            f"Format: {fmt}",
            f"Route: {_route(node.flow)}",
            f"Steps: {(metrics.steps if metrics else None) or 'Direct'}",
        ]
        if metrics is not None:
            lines.append(f"Status: {'Error' if metrics.has_error else 'OK'} (simulated)")
        return "\n".join(lines)
    return "\n".join([f"Data Flow: {node.display_id}", node.name, f"Format: {fmt}", _route(node.flow)])


def edge_tooltip(edge: GraphEdge, mode: ViewMode) -> str:
    if ViewMode.parse(mode) is ViewMode.TECHNICAL:
        lines = ["Connection", f"Type: {edge.kind.label}"]
        if edge.flow is not None:
            lines.append(f"Flow: {edge.flow.name or edge.flow.id or 'Unknown'}")
        if edge.step_type:
            lines.append(f"Step: {edge.step_type}")
        if edge.metrics is not None and edge.metrics.status:
            lines.append(f"Status: {edge.metrics.status} (simulated)")
        return "\n".join(lines)

    if edge.flow is not None:
        lines = ["Data Flow Connection", edge.flow.name or edge.flow.id or "Unknown"]
        if edge.flow.format:
            lines.append(f"Format: {edge.flow.format}")
    elif edge.step_type:
        lines = [f"Process Step: {edge.step_type}"]
    else:
        lines = ["Connection"]
    lines += [f"From: {edge.source}", f"To: {edge.target}"]
    return "\n".join(lines)
