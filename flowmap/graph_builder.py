"""Flow catalogue -> typed graph model, shaped by the current view mode."""

from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence, Set

from flowmap.models import (
    EdgeKind,
    EdgeStyle,
    FlowNode,
    FlowRecord,
    GraphEdge,
    GraphModel,
    GraphNode,
    InterfaceNode,
    NodeKind,
    SimulatedMetrics,
    SystemNode,
    ViewMode,
    system_id,
)
from flowmap.utils import _dedupe_preserve, classify_system, profile_time

LEVEL_SYSTEM = 1
LEVEL_INTERFACE = 2
LEVEL_FLOW = 3


def collect_system_ids(flows: Sequence[FlowRecord], systems: Iterable[str] = ()) -> List[str]:
    """Supplied system names first, then any source/target only named by a flow."""
    names = [system_id(name) for name in systems or [] if isinstance(name, str) and name.strip()]
    for flow in flows:
        names.append(flow.source_id)
        names.append(flow.target_id)
    return _dedupe_preserve(names)


def collect_interfaces(flows: Sequence[FlowRecord]) -> Dict[str, Dict[str, list]]:
    """Interface name -> connected systems, step types and flow ids, in first-seen order."""
    interfaces: Dict[str, Dict[str, list]] = {}
    for flow in flows:
        for step in flow.process_steps:
            if not step.interface:
                continue
            entry = interfaces.setdefault(step.interface, {"systems": [], "step_types": [], "flow_ids": []})
            if step.step_type == "reception":
                entry["systems"].append(flow.target_id)
            elif step.step_type == "delivery":
                entry["systems"].append(flow.source_id)
            if step.step_type:
                entry["step_types"].append(step.step_type)
            entry["flow_ids"].append(flow.id)
    for entry in interfaces.values():
        for key in entry:
            entry[key] = _dedupe_preserve(entry[key])
    return interfaces


def _system_node(name: str, level: Optional[int]) -> SystemNode:
    rule = classify_system(name)
    return SystemNode(id=name, group=rule["group"], group_label=rule["label"], color_slot=rule["slot"], level=level)


def _flow_rng(seed: int, flow: FlowRecord) -> random.Random:
    return random.Random(f"{seed}:{flow.id}")


def _flow_metrics(flow: FlowRecord, rng: random.Random) -> SimulatedMetrics:
    return SimulatedMetrics(
        steps=len(flow.process_steps),
        has_error=rng.random() > 0.8,
        latency_ms=rng.randint(50, 249),
    )


def _edge_metrics(rng: random.Random, latency_range=(5, 109)) -> SimulatedMetrics:
    return SimulatedMetrics(
        status="degraded" if rng.random() > 0.9 else "operational",
        latency_ms=rng.randint(*latency_range),
    )


def _flow_node(flow: FlowRecord, level: Optional[int], metrics: Optional[SimulatedMetrics] = None) -> FlowNode:
    return FlowNode(
        id=flow.node_id,
        display_id=flow.id,
        name=flow.name,
        format=flow.format,
        source_system=flow.source_id,
        target_system=flow.target_id,
        interface_ids=tuple(step.interface for step in flow.interface_steps),
        level=level,
        flow=flow,
        metrics=metrics,
    )


def dedupe_nodes(nodes: Iterable[GraphNode]) -> List[GraphNode]:
    unique: Dict[str, GraphNode] = {}
    for node in nodes:
        unique.setdefault(node.id, node)
    return list(unique.values())


def dedupe_edges(edges: Iterable[GraphEdge]) -> List[GraphEdge]:
    unique: Dict[tuple, GraphEdge] = {}
    for edge in edges:
        if edge.key in unique:
            logging.debug("Dropping duplicate edge %s", edge.id)
            continue
        unique[edge.key] = edge
    return list(unique.values())


def _hierarchical_graph(flows: Sequence[FlowRecord], system_names: List[str]):
    interfaces = collect_interfaces(flows)
    nodes: List[GraphNode] = [_system_node(name, LEVEL_SYSTEM) for name in system_names]
    for name, entry in interfaces.items():
        nodes.append(
            InterfaceNode(
                id=name,
                connected_systems=frozenset(entry["systems"]),
                level=LEVEL_INTERFACE,
                step_types=tuple(entry["step_types"]),
                flow_ids=tuple(entry["flow_ids"]),
            )
        )
    flow_nodes = [_flow_node(flow, LEVEL_FLOW) for flow in flows]
    nodes.extend(flow_nodes)

    edges: List[GraphEdge] = []
    for name, entry in interfaces.items():
        for system in entry["systems"]:
            edges.append(GraphEdge(source=system, target=name, kind=EdgeKind.SYSTEM_TO_INTERFACE, weight=1.2))
    for flow_node in flow_nodes:
        flow = flow_node.flow
        for interface_id in flow_node.interface_ids:
            edges.append(
                GraphEdge(source=interface_id, target=flow_node.id, kind=EdgeKind.INTERFACE_TO_FLOW, flow=flow)
            )
        edges.append(
            GraphEdge(
                source=flow.source_id,
                target=flow.target_id,
                kind=EdgeKind.SYSTEM_TO_SYSTEM,
                weight=0.5,
                style=EdgeStyle.DASHED,
                flow=flow,
            )
        )
    return nodes, edges


def _focus_filter(nodes: List[GraphNode], edges: List[GraphEdge], flows: Sequence[FlowRecord], focus: str):
    relevant_flows = [flow for flow in flows if focus in (flow.source_id, flow.target_id)]
    relevant_flow_ids = {flow.node_id for flow in relevant_flows}
    partner_systems: Set[str] = {focus}
    for flow in relevant_flows:
        partner_systems.update((flow.source_id, flow.target_id))
    relevant_interfaces = {
        edge.source
        for edge in edges
        if edge.kind is EdgeKind.INTERFACE_TO_FLOW and edge.target in relevant_flow_ids
    }

    def _keep(node: GraphNode) -> bool:
        if node.kind is NodeKind.SYSTEM:
            return node.id in partner_systems
        if node.kind is NodeKind.INTERFACE:
            return node.id in relevant_interfaces
        return node.id in relevant_flow_ids

    kept_nodes = [node for node in nodes if _keep(node)]
    kept_ids = {node.id for node in kept_nodes}
    kept_edges = []
    for edge in edges:
        if edge.kind is EdgeKind.SYSTEM_TO_SYSTEM:
            if focus in (edge.source, edge.target):
                kept_edges.append(edge)
        elif edge.source in kept_ids and edge.target in kept_ids:
            kept_edges.append(edge)
    logging.info(
        "Focused on %s: kept %d of %d nodes, %d of %d edges",
        focus,
        len(kept_nodes),
        len(nodes),
        len(kept_edges),
        len(edges),
    )
    return kept_nodes, kept_edges


def _technical_graph(
    flows: Sequence[FlowRecord], system_names: List[str], simulate_metrics: bool, metrics_seed: int
):
    interfaces = collect_interfaces(flows)
    nodes: List[GraphNode] = [_system_node(name, None) for name in system_names]
    for name, entry in interfaces.items():
        nodes.append(
            InterfaceNode(
                id=name,
                connected_systems=frozenset(entry["systems"]),
                step_types=tuple(entry["step_types"]),
                flow_ids=tuple(entry["flow_ids"]),
            )
        )

    edges: List[GraphEdge] = []
    for flow in flows:
        rng = _flow_rng(metrics_seed, flow) if simulate_metrics else None

        def _metrics(latency_range=(5, 109)) -> Optional[SimulatedMetrics]:
            return _edge_metrics(rng, latency_range) if rng is not None else None

        nodes.append(_flow_node(flow, None, _flow_metrics(flow, rng) if rng is not None else None))
        edges.append(
            GraphEdge(
                source=flow.source_id,
                target=flow.node_id,
                kind=EdgeKind.SYSTEM_TO_FLOW,
                flow=flow,
                metrics=_metrics(),
            )
        )

        steps = flow.process_steps
        if not flow.interface_steps:
            edges.append(
                GraphEdge(
                    source=flow.node_id,
                    target=flow.target_id,
                    kind=EdgeKind.FLOW_TO_SYSTEM,
                    flow=flow,
                    metrics=_metrics(),
                )
            )
            continue

        for index, step in enumerate(steps):
            if not step.interface:
                continue
            edges.append(
                GraphEdge(
                    source=flow.node_id,
                    target=step.interface,
                    kind=EdgeKind.FLOW_TO_INTERFACE,
                    weight=0.7,
                    style=EdgeStyle.DASHED,
                    flow=flow,
                    step_type=step.step_type or None,
                    step_index=index,
                    metrics=_metrics((10, 109)),
                )
            )
        for index, (current, following) in enumerate(zip(steps, steps[1:])):
            if not current.interface or not following.interface or current.interface == following.interface:
                continue
            edges.append(
                GraphEdge(
                    source=current.interface,
                    target=following.interface,
                    kind=EdgeKind.INTERFACE_TO_INTERFACE,
                    weight=0.5,
                    style=EdgeStyle.DOTTED,
                    flow=flow,
                    step_type=f"{current.step_type}-to-{following.step_type}",
                    step_index=index,
                    metrics=_metrics((5, 54)),
                )
            )
        last_step = flow.interface_steps[-1]
        edges.append(
            GraphEdge(
                source=last_step.interface,
                target=flow.target_id,
                kind=EdgeKind.INTERFACE_TO_SYSTEM,
                weight=0.7,
                flow=flow,
                step_type="final-delivery",
                metrics=_metrics(),
            )
        )
    return nodes, edges


@profile_time
def build_graph_model(
    flows: Sequence[FlowRecord],
    systems: Iterable[str] = (),
    mode: ViewMode = ViewMode.OVERVIEW,
    focus_system: Optional[str] = None,
    simulate_metrics: bool = True,
    metrics_seed: int = 0,
) -> GraphModel:
    """Build a fresh graph snapshot for ``mode``.

    Never raises on malformed records: blank system names collapse into a
    placeholder system, steps without an interface are skipped. In technical
    mode every flow and edge carries ``SimulatedMetrics`` unless
    ``simulate_metrics`` is off; they are placeholders seeded from
    ``metrics_seed`` and the flow id, so identical input gives identical output.
    """
    mode = ViewMode.parse(mode)
    flows = [flow for flow in flows or [] if isinstance(flow, FlowRecord)]
    system_names = collect_system_ids(flows, systems)

    if mode is ViewMode.TECHNICAL:
        nodes, edges = _technical_graph(flows, system_names, simulate_metrics, metrics_seed)
    else:
        nodes, edges = _hierarchical_graph(flows, system_names)

    nodes = dedupe_nodes(nodes)
    edges = dedupe_edges(edges)

    focus = system_id(focus_system) if focus_system else None
    if mode is ViewMode.FOCUSED and focus:
        nodes, edges = _focus_filter(nodes, edges, flows, focus)

    logging.info("Built %s graph: %d nodes, %d edges", mode.value, len(nodes), len(edges))
    return GraphModel(mode=mode, nodes=nodes, edges=edges, focus_system=focus if mode is ViewMode.FOCUSED else None)
