"""Sequence view of a single flow: source system, interface hops, target system."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from flowmap.models import FlowRecord, NodeKind, ProcessStep

SEQUENCE_WIDTH = 800
SEQUENCE_HEIGHT = 400


@dataclass(frozen=True)
class SequenceNode:
    key: str
    label: str
    kind: NodeKind
    x: float
    y: float
    steps: Tuple[ProcessStep, ...] = ()


@dataclass(frozen=True)
class SequenceLink:
    source: str
    target: str
    step_type: str
    step_index: int
    format: str = ""


@dataclass
class FlowSequence:
    flow: FlowRecord
    nodes: List[SequenceNode] = field(default_factory=list)
    links: List[SequenceLink] = field(default_factory=list)

    @property
    def direct(self) -> bool:
        return not self.flow.process_steps

    @property
    def step_count(self) -> int:
        return len(self.flow.process_steps)

    def node(self, key: str) -> Optional[SequenceNode]:
        return next((node for node in self.nodes if node.key == key), None)

    def step_completed(self, index: int, current_step: int) -> bool:
        return current_step > index


def _ordered_steps(steps) -> List[Tuple[int, ProcessStep]]:
    return sorted(enumerate(steps), key=lambda item: item[1].position or 0)


def build_flow_sequence(
    flow: FlowRecord, width: float = SEQUENCE_WIDTH, height: float = SEQUENCE_HEIGHT
) -> FlowSequence:
    """Lay out one flow left to right and chain its hops.

    Steps carrying a position are walked in position order starting at the
    source. Otherwise only delivery and reception steps advance the chain.
    Either way the last node reached links to the target system.
    """
    system_y = height / 2 - 80
    source = SequenceNode(key=f"source:{flow.source_id}", label=flow.source_id, kind=NodeKind.SYSTEM, x=100, y=system_y)
    target = SequenceNode(
        key=f"target:{flow.target_id}", label=flow.target_id, kind=NodeKind.SYSTEM, x=width - 100, y=system_y
    )
    steps = flow.process_steps
    if not steps:
        return FlowSequence(
            flow=flow,
            nodes=[source, target],
            links=[SequenceLink(source.key, target.key, "delivery", 0, flow.format)],
        )

    spacing = (width - 200) / (len(steps) + 1)
    interface_steps: Dict[str, List[ProcessStep]] = {}
    interface_x: Dict[str, float] = {}
    for index, step in enumerate(steps):
        if not step.interface:
            continue
        interface_steps.setdefault(step.interface, []).append(step)
        interface_x.setdefault(step.interface, 100 + spacing * (index + 1))
    interfaces = {
        name: SequenceNode(
            key=f"interface:{name}",
            label=name,
            kind=NodeKind.INTERFACE,
            x=interface_x[name],
            y=height / 2 + 20,
            steps=tuple(members),
        )
        for name, members in interface_steps.items()
    }

    links: List[SequenceLink] = []
    ordered = _ordered_steps(steps)
    current = source
    if any(step.position is not None for step in steps):
        for rank, (_, step) in enumerate(ordered):
            hop = interfaces.get(step.interface)
            if hop is None:
                continue
            links.append(SequenceLink(current.key, hop.key, step.step_type, rank, flow.format))
            current = hop
        if current is not source:
            links.append(SequenceLink(current.key, target.key, "delivery", len(steps), flow.format))
    else:
        for rank, (_, step) in enumerate(ordered):
            hop = interfaces.get(step.interface)
            if hop is None or step.step_type not in ("delivery", "reception"):
                continue
            links.append(SequenceLink(current.key, hop.key, step.step_type, rank, flow.format))
            current = hop
        links.append(SequenceLink(current.key, target.key, "delivery", len(steps), flow.format))

    return FlowSequence(flow=flow, nodes=[source, target, *interfaces.values()], links=links)
