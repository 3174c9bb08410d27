"""Force-directed layout: a tick-driven relaxation with per-mode force stacks.

The engine follows the classic velocity-Verlet scheme used by browser force
layouts: every tick the energy level ``alpha`` moves toward ``alpha_target``,
each force adds to node velocities (most of them scaled by ``alpha``),
velocities are damped and integrated, and pinned nodes are snapped back to
their pin. Forces are plain callables ``force(state, alpha)`` so each one can be
composed per mode and exercised on its own.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from flowmap.config import CONFIG, GRAPH_CANVAS_HEIGHT, GRAPH_CANVAS_WIDTH
from flowmap.models import GraphEdge, GraphModel, NodeKind, ViewMode
from flowmap.utils import is_hub_system, profile_time

_JIGGLE = 1e-6


@dataclass
class LayoutState:
    ids: List[str]
    position: np.ndarray
    velocity: np.ndarray
    pinned: np.ndarray
    pin_position: np.ndarray
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    def __post_init__(self) -> None:
        self.index: Dict[str, int] = {node_id: i for i, node_id in enumerate(self.ids)}

    def __len__(self) -> int:
        return len(self.ids)

    def jiggle(self, size) -> np.ndarray:
        return (self.rng.random(size) - 0.5) * _JIGGLE


Force = Callable[[LayoutState, float], None]


@dataclass(frozen=True)
class LayoutSnapshot:
    positions: Mapping[str, Tuple[float, float]]
    alpha: float
    running: bool
    ticks: int
    elapsed: float
    total_speed: float

    def position_of(self, node_id: str) -> Optional[Tuple[float, float]]:
        return self.positions.get(node_id)


def initial_positions(
    count: int,
    center: Tuple[float, float],
    previous: Optional[Mapping[str, Tuple[float, float]]] = None,
    ids: Sequence[str] = (),
) -> np.ndarray:
    """Phyllotaxis seeding around ``center``; nodes seen before keep their old spot."""
    positions = np.zeros((count, 2), dtype=float)
    angle_step = math.pi * (3 - math.sqrt(5))
    for i in range(count):
        radius = 10 * math.sqrt(0.5 + i)
        angle = i * angle_step
        positions[i] = (center[0] + radius * math.cos(angle), center[1] + radius * math.sin(angle))
    if previous:
        for i, node_id in enumerate(ids):
            old = previous.get(node_id)
            if old is not None and all(math.isfinite(v) for v in old):
                positions[i] = old
    return positions


# ------------------------------
# Forces
# ------------------------------


def link_force(
    edges: Sequence[GraphEdge],
    index: Mapping[str, int],
    distance: Callable[[GraphEdge], float],
    strength: float,
) -> Force:
    pairs = [
        (index[e.source], index[e.target], float(distance(e)))
        for e in edges
        if e.source in index and e.target in index and e.source != e.target
    ]
    if not pairs:
        return lambda state, alpha: None
    source = np.array([p[0] for p in pairs], dtype=int)
    target = np.array([p[1] for p in pairs], dtype=int)
    rest = np.array([p[2] for p in pairs], dtype=float)
    count = np.bincount(np.concatenate([source, target]), minlength=len(index)).astype(float)
    bias = count[source] / (count[source] + count[target])

    def force(state: LayoutState, alpha: float) -> None:
        delta = (state.position[target] + state.velocity[target]) - (
            state.position[source] + state.velocity[source]
        )
        zero = delta == 0
        if zero.any():
            delta[zero] = state.jiggle(int(zero.sum()))
        length = np.hypot(delta[:, 0], delta[:, 1])
        k = (length - rest) / length * alpha * strength
        shift = delta * k[:, None]
        np.add.at(state.velocity, target, -shift * bias[:, None])
        np.add.at(state.velocity, source, shift * (1 - bias)[:, None])

    return force


def charge_force(strengths: np.ndarray, distance_min: float = 1.0) -> Force:
    strengths = np.asarray(strengths, dtype=float)
    min_sq = distance_min * distance_min

    def force(state: LayoutState, alpha: float) -> None:
        n = len(state)
        if n < 2:
            return
        delta = state.position[None, :, :] - state.position[:, None, :]
        l2 = np.einsum("ijk,ijk->ij", delta, delta)
        coincident = l2 == 0
        np.fill_diagonal(coincident, False)
        if coincident.any():
            delta[coincident] = state.jiggle((int(coincident.sum()), 2))
            l2 = np.einsum("ijk,ijk->ij", delta, delta)
        l2 = np.maximum(l2, min_sq)
        np.fill_diagonal(l2, np.inf)
        weight = strengths[None, :] * alpha / l2
        state.velocity += np.einsum("ijk,ij->ik", delta, weight)

    return force


def collision_force(radii: np.ndarray, strength: float = 0.7, iterations: int = 1) -> Force:
    radii = np.asarray(radii, dtype=float)
    r_sq = radii * radii

    def force(state: LayoutState, alpha: float) -> None:
        n = len(state)
        if n < 2:
            return
        reach = radii[:, None] + radii[None, :]
        upper = np.triu(np.ones((n, n), dtype=bool), k=1)
        share = r_sq[None, :] / (r_sq[:, None] + r_sq[None, :])
        for _ in range(max(1, iterations)):
            predicted = state.position + state.velocity
            delta = predicted[:, None, :] - predicted[None, :, :]
            l2 = np.einsum("ijk,ijk->ij", delta, delta)
            overlap = upper & (l2 < reach * reach)
            if not overlap.any():
                return
            coincident = overlap & (l2 == 0)
            if coincident.any():
                delta[coincident] = state.jiggle((int(coincident.sum()), 2))
                l2 = np.einsum("ijk,ijk->ij", delta, delta)
            length = np.sqrt(np.where(overlap, l2, 1.0))
            k = np.where(overlap, (reach - length) / length * strength, 0.0)
            push = delta * k[:, :, None]
            state.velocity += np.einsum("ijk,ij->ik", push, share)
            state.velocity -= np.einsum("ijk,ij->jk", push, 1 - share)

    return force


def axis_force(axis: int, targets, strengths) -> Force:
    def force(state: LayoutState, alpha: float) -> None:
        if not len(state):
            return
        state.velocity[:, axis] += (targets - state.position[:, axis]) * strengths * alpha

    return force


def level_band_force(levels: Sequence[Optional[int]], height: float, bands: Mapping[int, float], strength: float) -> Force:
    fallback = max(bands.values()) if bands else 0.5
    targets = np.array([bands.get(level, fallback) * height for level in levels], dtype=float)
    return axis_force(1, targets, strength)


def level_spread_force(levels: Sequence[Optional[int]], ids: Sequence[str], width: float, strength: float) -> Force:
    """Spread nodes of each level evenly across the width, keeping their left-to-right order."""
    groups: Dict[int, List[int]] = {}
    for i, level in enumerate(levels):
        if level is not None:
            groups.setdefault(level, []).append(i)

    def force(state: LayoutState, alpha: float) -> None:
        for members in groups.values():
            ordered = sorted(members, key=lambda i: (state.position[i, 0], ids[i]))
            spacing = width / (len(ordered) + 1)
            for rank, i in enumerate(ordered):
                target_x = spacing * (rank + 1)
                state.velocity[i, 0] += (target_x - state.position[i, 0]) * alpha * strength

    return force


def radial_force(radii: np.ndarray, strengths: np.ndarray, center: Tuple[float, float]) -> Force:
    radii = np.asarray(radii, dtype=float)
    strengths = np.asarray(strengths, dtype=float)
    origin = np.asarray(center, dtype=float)

    def force(state: LayoutState, alpha: float) -> None:
        if not len(state):
            return
        delta = state.position - origin
        zero = delta == 0
        if zero.any():
            delta[zero] = state.jiggle(int(zero.sum()))
        r = np.hypot(delta[:, 0], delta[:, 1])
        k = (radii - r) * strengths * alpha / r
        state.velocity += delta * k[:, None]

    return force


def center_force(center: Tuple[float, float], strength: float = 1.0) -> Force:
    """Shift every node so the centroid drifts toward ``center``. Not alpha-scaled."""
    origin = np.asarray(center, dtype=float)

    def force(state: LayoutState, alpha: float) -> None:
        if not len(state):
            return
        shift = (state.position.mean(axis=0) - origin) * strength
        state.position -= shift

    return force


def kind_cluster_force(centers: np.ndarray, strength: float) -> Force:
    centers = np.asarray(centers, dtype=float)

    def force(state: LayoutState, alpha: float) -> None:
        if not len(state):
            return
        state.velocity += (centers - state.position) * alpha * strength

    return force


# ------------------------------
# Per-mode composition
# ------------------------------


def _profile(mode: ViewMode) -> Dict:
    key = "technical" if mode is ViewMode.TECHNICAL else "overview"
    return CONFIG["LAYOUT_PROFILES"][key]


def _node_class(node) -> str:
    if node.kind is NodeKind.SYSTEM and is_hub_system(node.id):
        return "hub"
    return node.kind.value


def build_force_stack(
    mode: ViewMode,
    model: GraphModel,
    width: float = GRAPH_CANVAS_WIDTH,
    height: float = GRAPH_CANVAS_HEIGHT,
) -> List[Tuple[str, Force]]:
    """Named forces for ``mode``; node indices follow ``model.nodes`` order."""
    mode = ViewMode.parse(mode)
    profile = _profile(mode)
    nodes = model.nodes
    ids = [node.id for node in nodes]
    index = {node_id: i for i, node_id in enumerate(ids)}
    kinds = [node.kind.value for node in nodes]
    distances = profile["link_distance"]
    default_distance = profile["default_link_distance"]

    def _distance(edge: GraphEdge) -> float:
        return distances.get(edge.kind.value, default_distance)

    charge = profile["charge"]
    strengths = np.array([charge.get(_node_class(node), charge[node.kind.value]) for node in nodes], dtype=float)
    collide_radii = np.array([profile["collision_radius"][kind] for kind in kinds], dtype=float)
    physics = CONFIG["PHYSICS_DEFAULTS"]
    center = (width / 2, height / 2)

    forces: List[Tuple[str, Force]] = [
        ("link", link_force(model.edges, index, _distance, profile["link_strength"])),
        ("charge", charge_force(strengths, physics["charge_distance_min"])),
    ]

    if mode.hierarchical:
        levels = [node.level for node in nodes]
        forces += [
            ("y", level_band_force(levels, height, profile["level_bands"], profile["level_band_strength"])),
            ("x", axis_force(0, width / 2, profile["center_x_strength"])),
            (
                "collision",
                collision_force(collide_radii, profile["collision_strength"], profile["collision_iterations"]),
            ),
            ("levelSpread", level_spread_force(levels, ids, width, profile["level_spread_strength"])),
        ]
        return forces

    span = min(width, height)
    radial_radii = np.array(
        [
            span * profile["hub_radius_ratio"]
            if _node_class(node) == "hub"
            else span * profile["system_radius_ratio"]
            if node.kind is NodeKind.SYSTEM
            else 0.0
            for node in nodes
        ],
        dtype=float,
    )
    radial_strengths = np.array(
        [profile["radial_strength"] if node.kind is NodeKind.SYSTEM else 0.0 for node in nodes], dtype=float
    )
    cluster_centers = np.array(
        [
            (profile["cluster_centers"][kind][0] * width, profile["cluster_centers"][kind][1] * height)
            for kind in kinds
        ],
        dtype=float,
    ).reshape(-1, 2)
    forces += [
        ("center", center_force(center, profile["center_strength"])),
        (
            "collision",
            collision_force(collide_radii, profile["collision_strength"], profile["collision_iterations"]),
        ),
        ("radial", radial_force(radial_radii, radial_strengths, center)),
        ("x", axis_force(0, center[0], profile["axis_strength"])),
        ("y", axis_force(1, center[1], profile["axis_strength"])),
        ("typeClustering", kind_cluster_force(cluster_centers, profile["cluster_strength"])),
    ]
    return forces


# ------------------------------
# Engine
# ------------------------------


class LayoutEngine:
    """One simulation instance per rendered graph; drive it with ``advance``."""

    def __init__(
        self,
        model: GraphModel,
        width: float = GRAPH_CANVAS_WIDTH,
        height: float = GRAPH_CANVAS_HEIGHT,
        seed: int = 23,
        params: Optional[Dict[str, float]] = None,
    ) -> None:
        self.width = float(width)
        self.height = float(height)
        self.params = {**CONFIG["PHYSICS_DEFAULTS"], **(params or {})}
        self._rng = np.random.default_rng(seed)
        self.state: Optional[LayoutState] = None
        self.reset(model)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.width / 2, self.height / 2)

    def reset(self, model: GraphModel, keep_positions: bool = False) -> None:
        """Replace the graph: discard velocities and pins, re-energize the simulation."""
        previous = self.snapshot().positions if (keep_positions and self.state is not None) else None
        ids = model.node_ids()
        n = len(ids)
        self.model = model
        self.state = LayoutState(
            ids=ids,
            position=initial_positions(n, self.center, previous, ids),
            velocity=np.zeros((n, 2), dtype=float),
            pinned=np.zeros(n, dtype=bool),
            pin_position=np.zeros((n, 2), dtype=float),
            rng=self._rng,
        )
        self.forces = build_force_stack(model.mode, model, self.width, self.height)
        self.alpha = float(self.params["alpha_start"])
        self.alpha_target = float(self.params["settle_alpha_target"])
        self.elapsed = 0.0
        self.ticks = 0
        self.running = n > 0
        self._dragging = False
        logging.debug("Layout reset: %d nodes, %d forces (%s)", n, len(self.forces), model.mode.value)

    def tick(self) -> float:
        state = self.state
        self.alpha += (self.alpha_target - self.alpha) * self.params["alpha_decay"]
        for name, force in self.forces:
            force(state, self.alpha)
        state.velocity *= 1 - self.params["velocity_decay"]
        free = ~state.pinned
        state.position[free] += state.velocity[free]
        state.position[state.pinned] = state.pin_position[state.pinned]
        state.velocity[state.pinned] = 0.0
        self._sanitize()
        self.ticks += 1
        return self.alpha

    def _sanitize(self) -> None:
        state = self.state
        bad_velocity = ~np.isfinite(state.velocity)
        if bad_velocity.any():
            logging.warning("Layout produced %d non-finite velocity components; zeroing", int(bad_velocity.sum()))
            state.velocity[bad_velocity] = 0.0
        bad_rows = ~np.isfinite(state.position).all(axis=1)
        if bad_rows.any():
            logging.warning("Layout produced %d non-finite positions; recentering", int(bad_rows.sum()))
            state.position[bad_rows] = np.asarray(self.center) + state.jiggle((int(bad_rows.sum()), 2))

    def advance(self, dt: float) -> LayoutSnapshot:
        """Advance simulated time by ``dt`` seconds and run one tick if still active."""
        if not self.running:
            return self.snapshot()
        self.elapsed += max(0.0, float(dt))
        if not self._dragging and self.elapsed >= self.params["settle_window"]:
            self.alpha_target = 0.0
        self.tick()
        if not self._dragging:
            if self.alpha < self.params["alpha_min"] and self.is_stable():
                self.running = False
                logging.debug("Layout converged after %d ticks (%.2fs)", self.ticks, self.elapsed)
            elif self.elapsed >= self.params["max_simulated_time"]:
                self.running = False
                logging.info(
                    "Layout stopped at time limit with alpha %.4f, speed %.3f", self.alpha, self.total_speed()
                )
        return self.snapshot()

    @profile_time
    def run(self, max_ticks: Optional[int] = None) -> LayoutSnapshot:
        """Drive ``advance`` at the frame interval until the simulation rests."""
        frame = self.params["frame_interval"]
        limit = max_ticks if max_ticks is not None else int(self.params["max_simulated_time"] / frame) + 1
        for _ in range(limit):
            if not self.running:
                break
            self.advance(frame)
        return self.snapshot()

    def restart(self, alpha: Optional[float] = None) -> None:
        if alpha is not None:
            self.alpha = float(alpha)
        self.running = len(self.state) > 0

    def stop(self) -> None:
        self.running = False

    def pin(self, node_id: str, x: float, y: float) -> bool:
        i = self.state.index.get(node_id)
        if i is None or not (math.isfinite(x) and math.isfinite(y)):
            return False
        self.state.pinned[i] = True
        self.state.pin_position[i] = (x, y)
        self.state.position[i] = (x, y)
        self.state.velocity[i] = 0.0
        return True

    def release(self, node_id: str) -> None:
        i = self.state.index.get(node_id)
        if i is not None:
            self.state.pinned[i] = False

    def is_pinned(self, node_id: str) -> bool:
        i = self.state.index.get(node_id)
        return bool(i is not None and self.state.pinned[i])

    def begin_drag(self) -> None:
        """Re-energize for a drag; the release gets a fresh time budget to coast to rest."""
        self._dragging = True
        self.alpha_target = float(self.params["drag_alpha_target"])
        self.elapsed = 0.0
        self.restart(max(self.alpha, self.alpha_target))

    def end_drag(self) -> None:
        self._dragging = False
        self.alpha_target = 0.0

    def total_speed(self) -> float:
        if not len(self.state):
            return 0.0
        return float(np.hypot(self.state.velocity[:, 0], self.state.velocity[:, 1]).sum())

    def is_stable(self, epsilon: Optional[float] = None) -> bool:
        limit = self.params["convergence_epsilon"] if epsilon is None else epsilon
        return self.total_speed() < limit

    def snapshot(self) -> LayoutSnapshot:
        state = self.state
        positions = {node_id: (float(x), float(y)) for node_id, (x, y) in zip(state.ids, state.position)}
        return LayoutSnapshot(
            positions=MappingProxyType(positions),
            alpha=float(self.alpha),
            running=bool(self.running),
            ticks=self.ticks,
            elapsed=self.elapsed,
            total_speed=self.total_speed(),
        )
