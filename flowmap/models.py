"""Data models for flow records and the derived graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import networkx as nx

from flowmap.config import UNKNOWN_SYSTEM


class ViewMode(str, Enum):
    OVERVIEW = "overview"
    FOCUSED = "focused"
    TECHNICAL = "technical"

    @classmethod
    def parse(cls, value: Any) -> "ViewMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OVERVIEW

    @property
    def hierarchical(self) -> bool:
        return self is not ViewMode.TECHNICAL


class NodeKind(str, Enum):
    SYSTEM = "system"
    INTERFACE = "interface"
    FLOW = "flow"


class EdgeKind(str, Enum):
    SYSTEM_TO_INTERFACE = "system_to_interface"
    INTERFACE_TO_FLOW = "interface_to_flow"
    SYSTEM_TO_SYSTEM = "system_to_system"
    SYSTEM_TO_FLOW = "system_to_flow"
    FLOW_TO_INTERFACE = "flow_to_interface"
    INTERFACE_TO_INTERFACE = "interface_to_interface"
    INTERFACE_TO_SYSTEM = "interface_to_system"
    FLOW_TO_SYSTEM = "flow_to_system"

    @property
    def label(self) -> str:
        return self.value.replace("_to_", " to ").replace("_", " ")


class EdgeStyle(str, Enum):
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class ProcessStep:
    step_type: str
    interface: str
    position: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ProcessStep":
        if not isinstance(data, dict):
            return cls(step_type="", interface="")
        position = data.get("position")
        try:
            position = int(position) if position not in (None, "") else None
        except (TypeError, ValueError):
            position = None
        return cls(
            step_type=_text(data.get("step_type")).lower(),
            interface=_text(data.get("interface")),
            position=position,
        )


@dataclass(frozen=True)
class FlowRecord:
    id: str
    name: str = ""
    description: str = ""
    source_system: str = ""
    target_system: str = ""
    format: str = ""
    transmission_method: str = ""
    process_steps: Tuple[ProcessStep, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowRecord":
        raw_steps = data.get("process_steps")
        if not isinstance(raw_steps, (list, tuple)):
            raw_steps = []
        return cls(
            id=_text(data.get("id")),
            # Some payloads abbreviate the display name to "n".
            name=_text(data.get("name") or data.get("n")),
            description=_text(data.get("description")),
            source_system=_text(data.get("source_system")),
            target_system=_text(data.get("target_system")),
            format=_text(data.get("format")),
            transmission_method=_text(data.get("transmission_method")),
            process_steps=tuple(ProcessStep.from_dict(step) for step in raw_steps),
        )

    @property
    def node_id(self) -> str:
        return flow_node_id(self.id)

    @property
    def source_id(self) -> str:
        return system_id(self.source_system)

    @property
    def target_id(self) -> str:
        return system_id(self.target_system)

    @property
    def interface_steps(self) -> List[ProcessStep]:
        return [step for step in self.process_steps if step.interface]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "source_system": self.source_system,
            "target_system": self.target_system,
            "format": self.format,
            "transmission_method": self.transmission_method,
            "process_steps": [
                {"step_type": s.step_type, "interface": s.interface, "position": s.position}
                for s in self.process_steps
            ],
        }


def flow_node_id(flow_id: str) -> str:
    return f"flow-{flow_id}"


def system_id(name: Any) -> str:
    return _text(name) or UNKNOWN_SYSTEM


@dataclass(frozen=True)
class SimulatedMetrics:
    """Illustrative diagnostics. Not derived from any telemetry source."""

    simulated: bool = True
    steps: Optional[int] = None
    has_error: bool = False
    latency_ms: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class SystemNode:
    id: str
    group: int
    group_label: str
    color_slot: Optional[str] = None
    level: Optional[int] = None

    @property
    def kind(self) -> NodeKind:
        return NodeKind.SYSTEM


@dataclass(frozen=True)
class InterfaceNode:
    id: str
    connected_systems: FrozenSet[str] = frozenset()
    level: Optional[int] = None
    step_types: Tuple[str, ...] = ()
    flow_ids: Tuple[str, ...] = ()

    @property
    def kind(self) -> NodeKind:
        return NodeKind.INTERFACE


@dataclass(frozen=True)
class FlowNode:
    id: str
    display_id: str
    name: str
    format: str
    source_system: str
    target_system: str
    interface_ids: Tuple[str, ...] = ()
    level: Optional[int] = None
    flow: Optional[FlowRecord] = None
    metrics: Optional[SimulatedMetrics] = None

    @property
    def kind(self) -> NodeKind:
        return NodeKind.FLOW


GraphNode = Union[SystemNode, InterfaceNode, FlowNode]


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    kind: EdgeKind
    weight: float = 1.0
    style: EdgeStyle = EdgeStyle.SOLID
    flow: Optional[FlowRecord] = None
    step_type: Optional[str] = None
    step_index: Optional[int] = None
    metrics: Optional[SimulatedMetrics] = None

    @property
    def key(self) -> Tuple[str, str, EdgeKind]:
        return (self.source, self.target, self.kind)

    @property
    def id(self) -> str:
        return f"{self.source}->{self.target}:{self.kind.value}"

    @property
    def flow_node_id(self) -> Optional[str]:
        return self.flow.node_id if self.flow is not None else None


@dataclass
class GraphModel:
    mode: ViewMode
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    focus_system: Optional[str] = None

    def __post_init__(self) -> None:
        self._node_index: Dict[str, GraphNode] = {node.id: node for node in self.nodes}
        self._edge_index: Dict[str, GraphEdge] = {edge.id: edge for edge in self.edges}

    def node(self, node_id: Optional[str]) -> Optional[GraphNode]:
        if node_id is None:
            return None
        return self._node_index.get(node_id)

    def edge(self, edge_id: Optional[str]) -> Optional[GraphEdge]:
        if edge_id is None:
            return None
        return self._edge_index.get(edge_id)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def nodes_of_kind(self, kind: NodeKind) -> List[GraphNode]:
        return [node for node in self.nodes if node.kind is kind]

    def edges_for_flow(self, flow_id: str) -> List[GraphEdge]:
        return [edge for edge in self.edges if edge.flow is not None and edge.flow.id == flow_id]

    def flows(self) -> List[FlowRecord]:
        return [node.flow for node in self.nodes if isinstance(node, FlowNode) and node.flow is not None]

    def to_networkx(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        for node in self.nodes:
            graph.add_node(node.id, kind=node.kind.value)
        for edge in self.edges:
            graph.add_edge(edge.source, edge.target, kind=edge.kind.value, weight=edge.weight)
        return graph

    def flow_path_exists(self, flow: FlowRecord, edges: Optional[Iterable[GraphEdge]] = None) -> bool:
        """True when ``edges`` (default: the whole model) lead from the flow's source to its target."""
        if edges is None:
            graph = self.to_networkx()
        else:
            graph = nx.DiGraph()
            graph.add_edges_from((edge.source, edge.target) for edge in edges)
        if flow.source_id not in graph or flow.target_id not in graph:
            return False
        return nx.has_path(graph, flow.source_id, flow.target_id)
