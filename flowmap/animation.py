"""Edge curves, travelling particles and stepped flow playback."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from flowmap.config import CONFIG
from flowmap.models import EdgeKind, GraphEdge
from flowmap.utils import _finite

Point = Tuple[float, float]

MINIMAL_PATH = "M0,0 L0,0"


class CurvePath:
    """Quadratic bezier with an arc-length lookup table.

    ``point_at(t)`` takes ``t`` as a fraction of the arc length, not of the
    bezier parameter, so particles move at constant speed along the curve.
    """

    def __init__(self, start: Point, control: Point, end: Point, samples: Optional[int] = None) -> None:
        self.start = (float(start[0]), float(start[1]))
        self.control = (float(control[0]), float(control[1]))
        self.end = (float(end[0]), float(end[1]))
        count = samples or CONFIG["ANIMATION"]["arc_samples"]
        self._params = np.linspace(0.0, 1.0, count + 1)
        points = self._evaluate(self._params)
        if np.isfinite(points).all():
            steps = np.hypot(*np.diff(points, axis=0).T)
            self._cumulative = np.concatenate([[0.0], np.cumsum(steps)])
        else:
            self._cumulative = np.zeros(count + 1)

    @classmethod
    def minimal(cls) -> "CurvePath":
        return cls((0.0, 0.0), (0.0, 0.0), (0.0, 0.0), samples=1)

    def _evaluate(self, u: np.ndarray) -> np.ndarray:
        u = np.asarray(u, dtype=float)[..., None]
        p0, p1, p2 = (np.asarray(p) for p in (self.start, self.control, self.end))
        return (1 - u) ** 2 * p0 + 2 * (1 - u) * u * p1 + u**2 * p2

    @property
    def length(self) -> float:
        return float(self._cumulative[-1])

    @property
    def measurable(self) -> bool:
        return self.length > 0 and math.isfinite(self.length)

    def point_at(self, t: float) -> Point:
        if not self.measurable:
            return self.start
        target = min(max(float(t), 0.0), 1.0) * self.length
        u = float(np.interp(target, self._cumulative, self._params))
        x, y = self._evaluate(u)
        return (float(x), float(y))

    def svg_path(self) -> str:
        if not self.measurable:
            return MINIMAL_PATH
        (sx, sy), (cx, cy), (tx, ty) = self.start, self.control, self.end
        return f"M{sx:g},{sy:g} Q{cx:g},{cy:g} {tx:g},{ty:g}"


def link_curve(kind: EdgeKind, source_xy: Optional[Point], target_xy: Optional[Point]) -> CurvePath:
    """Curve for an edge between two laid-out points.

    Shadow system links bow upward; everything else gets a slight offset
    along the normal so opposite edges do not overlap.
    """
    if source_xy is None or target_xy is None or not _finite(*source_xy, *target_xy):
        return CurvePath.minimal()
    (sx, sy), (tx, ty) = source_xy, target_xy
    dx, dy = tx - sx, ty - sy
    if dx == 0 and dy == 0:
        return CurvePath.minimal()
    settings = CONFIG["ANIMATION"]
    mid_x, mid_y = (sx + tx) / 2, (sy + ty) / 2
    if EdgeKind(kind) is EdgeKind.SYSTEM_TO_SYSTEM:
        control = (mid_x, mid_y - settings["shadow_bow"])
    else:
        distance = math.hypot(dx, dy)
        offset = settings["link_offset"]
        control = (mid_x - dy / distance * offset, mid_y + dx / distance * offset)
    return CurvePath((sx, sy), control, (tx, ty))


def auto_particle_count(length: float) -> int:
    return max(1, int(length // CONFIG["ANIMATION"]["particle_spacing"]))


def auto_period(length: float) -> float:
    # base seconds plus one millisecond per ten units of length
    return CONFIG["ANIMATION"]["sequence_period_base"] + length / 10000.0


class EdgeParticles:
    """Evenly phase-shifted particles looping along one curve.

    Leave ``count``/``period`` unset to size them from the curve length.
    """

    def __init__(
        self,
        curve: Optional[CurvePath] = None,
        count: Optional[int] = None,
        period: Optional[float] = None,
        color: Optional[str] = None,
    ) -> None:
        self.curve = curve or CurvePath.minimal()
        self._count = count
        self._period = period
        self.color = color
        self.elapsed = 0.0
        self.active = True

    @property
    def particle_count(self) -> int:
        if self._count is not None:
            return max(1, int(self._count))
        return auto_particle_count(self.curve.length)

    @property
    def period(self) -> float:
        if self._period is not None:
            return float(self._period)
        return auto_period(self.curve.length)

    def update_curve(self, curve: CurvePath) -> None:
        self.curve = curve

    def phases(self) -> List[float]:
        count = self.particle_count
        base = (self.elapsed % self.period) / self.period
        return [(base + i / count) % 1.0 for i in range(count)]

    def advance(self, dt: float) -> List[Point]:
        if not self.active:
            return []
        self.elapsed += max(0.0, float(dt))
        # Geometry may not be ready yet; try again next frame.
        if not self.curve.measurable:
            return []
        return [self.curve.point_at(phase) for phase in self.phases()]

    def stop(self) -> None:
        self.active = False


@dataclass
class AmbientAnimator:
    """One looping particle per edge that carries a flow with a format."""

    edges: Iterable[GraphEdge] = ()
    period: float = field(default_factory=lambda: CONFIG["ANIMATION"]["particle_period"])

    def __post_init__(self) -> None:
        self.groups: Dict[str, EdgeParticles] = {
            edge.id: EdgeParticles(count=1, period=self.period)
            for edge in self.edges
            if edge.flow is not None and edge.flow.format
        }
        self.stopped = False
        logging.debug("Ambient animation on %d edges", len(self.groups))

    def advance(self, dt: float, curves: Mapping[str, CurvePath]) -> Dict[str, List[Point]]:
        if self.stopped:
            return {}
        frame: Dict[str, List[Point]] = {}
        for edge_id, group in self.groups.items():
            curve = curves.get(edge_id)
            if curve is not None:
                group.update_curve(curve)
            frame[edge_id] = group.advance(dt)
        return frame

    def stop(self) -> None:
        for group in self.groups.values():
            group.stop()
        self.stopped = True


class StepPlayback:
    """Discrete playback of one flow's steps, one step per ``interval`` seconds."""

    def __init__(self, step_count: int, interval: Optional[float] = None) -> None:
        self.step_count = max(0, int(step_count))
        self.interval = float(interval if interval is not None else CONFIG["ANIMATION"]["step_interval"])
        self.current_step = 0
        self.playing = False
        self._accumulated = 0.0

    @property
    def finished(self) -> bool:
        return self.current_step >= self.step_count

    @property
    def progress(self) -> float:
        if not self.step_count:
            return 0.0
        return self.current_step / self.step_count

    def play(self) -> None:
        self.current_step = 0
        self._accumulated = 0.0
        self.playing = self.step_count > 0

    def pause(self) -> None:
        self.playing = False

    def toggle(self) -> bool:
        if self.playing:
            self.pause()
        else:
            self.play()
        return self.playing

    def advance(self, dt: float) -> int:
        if not self.playing:
            return self.current_step
        self._accumulated += max(0.0, float(dt))
        while self._accumulated >= self.interval and self.playing:
            self._accumulated -= self.interval
            self.current_step += 1
            if self.finished:
                self.current_step = self.step_count
                self.playing = False
        return self.current_step

    def stop(self) -> None:
        self.playing = False
        self._accumulated = 0.0

    def reset(self) -> None:
        self.stop()
        self.current_step = 0
