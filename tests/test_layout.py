"""
Unit tests for the force layout.

Tests cover:
- Individual forces on hand-placed states
- Per-mode force stacks
- Engine settling, pinning and drag energy
- Degenerate input (empty graph, coincident nodes)
"""

import math

import numpy as np
import pytest

from flowmap.graph_builder import build_graph_model
from flowmap.layout import (
    LayoutEngine,
    LayoutState,
    build_force_stack,
    center_force,
    charge_force,
    collision_force,
    initial_positions,
    level_spread_force,
    link_force,
    radial_force,
)
from flowmap.models import EdgeKind, FlowRecord, GraphEdge, GraphModel, ViewMode


def _large_catalogue(count=25, systems=8):
    """Flows that all touch SYS-0, spread over the remaining systems and six interfaces."""
    flows = []
    for i in range(count):
        partner = f"SYS-{i % (systems - 1) + 1}"
        source, target = ("SYS-0", partner) if i % 2 == 0 else (partner, "SYS-0")
        steps = [{"step_type": "reception", "interface": f"IF-{i % 6}"}]
        if i % 3 == 0:
            steps.append({"step_type": "delivery", "interface": f"IF-{(i + 1) % 6}"})
        flows.append(
            FlowRecord.from_dict(
                {"id": f"L{i}", "name": f"Flow {i}", "source_system": source, "target_system": target, "process_steps": steps}
            )
        )
    return flows


def _state(ids, positions):
    n = len(ids)
    return LayoutState(
        ids=list(ids),
        position=np.array(positions, dtype=float),
        velocity=np.zeros((n, 2)),
        pinned=np.zeros(n, dtype=bool),
        pin_position=np.zeros((n, 2)),
        rng=np.random.default_rng(0),
    )


class TestForces:
    def test_link_pulls_stretched_pair_together(self):
        state = _state(["a", "b"], [[0, 0], [300, 0]])
        edge = GraphEdge("a", "b", EdgeKind.SYSTEM_TO_FLOW)
        force = link_force([edge], state.index, lambda e: 100.0, strength=0.5)

        force(state, 1.0)

        assert state.velocity[0, 0] > 0
        assert state.velocity[1, 0] < 0

    def test_link_ignores_unknown_endpoints(self):
        state = _state(["a"], [[0, 0]])
        force = link_force([GraphEdge("a", "zzz", EdgeKind.SYSTEM_TO_FLOW)], state.index, lambda e: 100.0, 0.5)
        force(state, 1.0)
        assert not state.velocity.any()

    def test_charge_repels(self):
        state = _state(["a", "b"], [[0, 0], [300, 0]])
        charge_force(np.array([-1000.0, -1000.0]))(state, 1.0)

        assert state.velocity[0, 0] < 0
        assert state.velocity[1, 0] > 0

    def test_collision_separates_overlapping_nodes(self):
        state = _state(["a", "b"], [[0, 0], [20, 0]])
        collision_force(np.array([50.0, 50.0]), strength=1.0)(state, 0.0)

        assert state.velocity[0, 0] < 0
        assert state.velocity[1, 0] > 0

    def test_collision_leaves_distant_nodes_alone(self):
        state = _state(["a", "b"], [[0, 0], [500, 0]])
        collision_force(np.array([50.0, 50.0]))(state, 1.0)
        assert not state.velocity.any()

    def test_level_spread_orders_by_x(self):
        state = _state(["a", "b", "c"], [[600, 0], [600, 0], [600, 0]])
        level_spread_force([1, 1, 1], state.ids, 1200, strength=1.0)(state, 1.0)

        # targets 300, 600, 900 with ties broken by id
        assert state.velocity[0, 0] == pytest.approx(-300)
        assert state.velocity[1, 0] == pytest.approx(0)
        assert state.velocity[2, 0] == pytest.approx(300)

    def test_radial_pushes_toward_ring(self):
        state = _state(["a"], [[610, 350]])
        radial_force(np.array([100.0]), np.array([1.0]), (600, 350))(state, 1.0)
        assert state.velocity[0, 0] == pytest.approx(90)

    def test_center_shifts_centroid(self):
        state = _state(["a", "b"], [[0, 0], [100, 100]])
        center_force((600, 350))(state, 0.0)

        assert state.position.mean(axis=0) == pytest.approx([600, 350])
        assert not state.velocity.any()


class TestForceStacks:
    def test_overview_stack(self, overview_model):
        names = [name for name, _ in build_force_stack(ViewMode.OVERVIEW, overview_model)]
        assert names == ["link", "charge", "y", "x", "collision", "levelSpread"]

    def test_technical_stack(self, technical_model):
        names = [name for name, _ in build_force_stack(ViewMode.TECHNICAL, technical_model)]
        assert names == ["link", "charge", "center", "collision", "radial", "x", "y", "typeClustering"]


class TestInitialPositions:
    def test_positions_are_distinct_and_near_center(self):
        positions = initial_positions(10, (600, 350))
        assert len({tuple(p) for p in positions.round(6)}) == 10
        assert np.all(np.hypot(*(positions - [600, 350]).T) < 50)

    def test_previous_positions_are_reused(self):
        positions = initial_positions(2, (0, 0), previous={"b": (42.0, 7.0)}, ids=["a", "b"])
        assert tuple(positions[1]) == (42.0, 7.0)


class TestLayoutEngine:
    def test_run_settles(self, direct_flow):
        model = build_graph_model([direct_flow], mode=ViewMode.TECHNICAL)
        engine = LayoutEngine(model)

        snapshot = engine.run()

        assert snapshot.running is False
        assert snapshot.alpha < engine.params["alpha_min"]
        assert engine.is_stable()
        assert all(math.isfinite(v) for xy in snapshot.positions.values() for v in xy)

    def test_run_settles_hierarchical(self, overview_model):
        engine = LayoutEngine(overview_model)
        snapshot = engine.run()

        assert snapshot.running is False
        assert snapshot.elapsed < engine.params["max_simulated_time"]
        assert engine.is_stable()

    @pytest.mark.parametrize("mode", [ViewMode.OVERVIEW, ViewMode.FOCUSED, ViewMode.TECHNICAL])
    def test_large_graph_comes_to_rest(self, mode):
        model = build_graph_model(_large_catalogue(), mode=mode, focus_system="SYS-0")
        assert len(model.nodes) >= 30
        engine = LayoutEngine(model)

        snapshot = engine.run()

        assert snapshot.running is False
        assert snapshot.elapsed < engine.params["max_simulated_time"]
        assert snapshot.alpha < engine.params["alpha_min"]
        assert engine.is_stable()
        assert snapshot.total_speed < engine.params["convergence_epsilon"]

    def test_keeps_ticking_while_nodes_still_move(self, technical_model):
        engine = LayoutEngine(technical_model)
        engine.run()
        engine.state.velocity[:] = 5.0
        engine.restart()

        snapshot = engine.advance(1 / 60)

        assert snapshot.alpha < engine.params["alpha_min"]
        assert snapshot.running is True
        assert engine.run().running is False
        assert engine.is_stable()

    def test_overview_levels_are_banded(self, overview_model):
        engine = LayoutEngine(overview_model)
        snapshot = engine.run()

        system_y = snapshot.position_of("SYS-A")[1]
        interface_y = snapshot.position_of("IF-1")[1]
        flow_y = snapshot.position_of("flow-F1")[1]
        assert system_y < interface_y < flow_y

    def test_settle_window_then_cool_down(self, technical_model):
        engine = LayoutEngine(technical_model)
        engine.advance(1.0)
        assert engine.alpha_target == engine.params["settle_alpha_target"]
        engine.advance(2.5)
        assert engine.alpha_target == 0.0

    def test_time_limit_stops_simulation(self, technical_model):
        engine = LayoutEngine(technical_model)
        engine.advance(61.0)
        assert engine.running is False

    def test_pinned_node_holds_position(self, technical_model):
        engine = LayoutEngine(technical_model)
        assert engine.pin("SYS-A", 100.0, 120.0)

        snapshot = engine.run()

        assert snapshot.position_of("SYS-A") == (100.0, 120.0)
        assert engine.is_pinned("SYS-A")
        engine.release("SYS-A")
        assert not engine.is_pinned("SYS-A")

    def test_pin_rejects_unknown_or_non_finite(self, technical_model):
        engine = LayoutEngine(technical_model)
        assert engine.pin("nope", 1.0, 1.0) is False
        assert engine.pin("SYS-A", float("nan"), 1.0) is False
        assert not engine.is_pinned("SYS-A")

    def test_drag_keeps_simulation_warm(self, technical_model):
        engine = LayoutEngine(technical_model)
        engine.run()
        assert engine.running is False

        engine.begin_drag()
        for _ in range(400):
            engine.advance(1 / 60)
        assert engine.running is True
        assert engine.alpha > engine.params["alpha_min"]

        engine.end_drag()
        engine.run()
        assert engine.running is False

    def test_drag_after_time_limit_coasts_to_rest(self, technical_model):
        engine = LayoutEngine(technical_model)
        engine.advance(61.0)
        assert engine.running is False

        engine.begin_drag()
        assert engine.alpha >= engine.params["drag_alpha_target"]
        assert engine.elapsed == 0.0
        engine.end_drag()
        snapshot = engine.run()

        assert snapshot.running is False
        assert snapshot.alpha < engine.params["alpha_min"]
        assert engine.is_stable()

    def test_coincident_nodes_stay_finite(self, technical_model):
        engine = LayoutEngine(technical_model)
        engine.state.position[:] = 300.0

        engine.tick()

        positions = engine.state.position
        assert np.isfinite(positions).all()
        assert len({tuple(p) for p in positions}) > 1

    def test_empty_graph(self):
        engine = LayoutEngine(GraphModel(mode=ViewMode.TECHNICAL))

        snapshot = engine.run()

        assert snapshot.positions == {}
        assert snapshot.running is False
        assert engine.total_speed() == 0.0

    def test_reset_keeps_positions_on_request(self, catalogue, single_hop_flow):
        engine = LayoutEngine(build_graph_model([single_hop_flow], mode=ViewMode.TECHNICAL))
        engine.run()
        before = engine.snapshot().position_of("SYS-A")

        engine.reset(build_graph_model(catalogue, mode=ViewMode.TECHNICAL), keep_positions=True)

        assert engine.snapshot().position_of("SYS-A") == before
        assert engine.running is True

    def test_snapshot_is_read_only(self, technical_model):
        snapshot = LayoutEngine(technical_model).snapshot()
        with pytest.raises(TypeError):
            snapshot.positions["SYS-A"] = (0.0, 0.0)
