"""Focus highlighting: which edges and nodes light up around a focused node."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from flowmap.models import FlowNode, GraphModel


class Emphasis(str, Enum):
    SELECTED = "selected"
    CONNECTED = "connected"
    DIMMED = "dimmed"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class HighlightState:
    focus_id: Optional[str] = None
    highlighted_edge_ids: FrozenSet[str] = frozenset()
    connected_node_ids: FrozenSet[str] = frozenset()

    @property
    def active(self) -> bool:
        return self.focus_id is not None

    def emphasis_of(self, node_id: str) -> Emphasis:
        if self.focus_id is None:
            return Emphasis.NEUTRAL
        if node_id == self.focus_id:
            return Emphasis.SELECTED
        if node_id in self.connected_node_ids:
            return Emphasis.CONNECTED
        return Emphasis.DIMMED

    def edge_emphasis(self, edge_id: str) -> Emphasis:
        if self.focus_id is None:
            return Emphasis.NEUTRAL
        if edge_id in self.highlighted_edge_ids:
            return Emphasis.SELECTED
        return Emphasis.DIMMED


NEUTRAL = HighlightState()


class SelectionHighlighter:
    """Stateless apart from the model: every ``focus`` call starts from scratch."""

    def __init__(self, model: GraphModel) -> None:
        self.model = model

    def focus(self, node_id: Optional[str]) -> HighlightState:
        node = self.model.node(node_id)
        if node is None:
            return NEUTRAL

        edge_ids = set()
        connected = set()
        for edge in self.model.edges:
            if edge.source == node.id:
                edge_ids.add(edge.id)
                connected.add(edge.target)
            elif edge.target == node.id:
                edge_ids.add(edge.id)
                connected.add(edge.source)

        # A flow's path is spread across edges that do not touch the flow node.
        if isinstance(node, FlowNode):
            for edge in self.model.edges:
                if edge.flow is not None and edge.flow.id == node.display_id:
                    edge_ids.add(edge.id)
                    connected.update((edge.source, edge.target))

        connected.discard(node.id)
        return HighlightState(
            focus_id=node.id,
            highlighted_edge_ids=frozenset(edge_ids),
            connected_node_ids=frozenset(connected),
        )
