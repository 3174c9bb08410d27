"""
Unit tests for pointer interaction.

Tests cover:
- Pan and clamped zoom
- Click selection semantics and callbacks
- Drag-to-pin against a live layout engine
- Hover tooltip text and placement
"""

import pytest

from flowmap.graph_builder import build_graph_model
from flowmap.highlight import NEUTRAL
from flowmap.interaction import HIDDEN_TOOLTIP, InteractionController, SelectionState, ViewTransform
from flowmap.layout import LayoutEngine
from flowmap.models import FlowRecord, ViewMode


class Recorder:
    def __init__(self):
        self.flows = []
        self.systems = []

    def flow(self, flow):
        self.flows.append(flow.id if flow is not None else None)

    def system(self, system):
        self.systems.append(system)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def controller(technical_model, recorder):
    return InteractionController(
        technical_model,
        LayoutEngine(technical_model),
        on_select_flow=recorder.flow,
        on_select_system=recorder.system,
    )


class TestSelectionState:
    def test_flow_and_system_are_exclusive(self):
        state = SelectionState().select_system("SYS-A").select_flow("F1")
        assert state == SelectionState(selected_flow_id="F1")

        state = state.select_system("SYS-B")
        assert state == SelectionState(selected_system="SYS-B")

    def test_clearing_one_keeps_the_other(self):
        state = SelectionState(selected_system="SYS-A").select_flow(None)
        assert state.selected_system == "SYS-A"


class TestViewTransform:
    def test_apply_and_invert(self):
        transform = ViewTransform(x=10, y=-5, k=2)
        assert transform.apply((3, 4)) == (16, 3)
        assert transform.invert(transform.apply((3, 4))) == (3, 4)


class TestPanZoom:
    def test_pan(self, controller):
        controller.pan(15, -5)
        controller.pan(5, 5)
        assert controller.transform == ViewTransform(x=20, y=0, k=1)

    def test_zoom_is_clamped(self, controller):
        assert controller.zoom_by(100).k == 5.0
        assert controller.zoom_by(1e-6).k == 0.3

    def test_zoom_keeps_anchor_fixed(self, controller):
        controller.pan(7, 3)
        anchor = (100.0, 50.0)
        before = controller.transform.invert(anchor)

        controller.zoom_by(2.0, anchor)

        assert controller.transform.k == 2.0
        assert controller.transform.apply(before) == pytest.approx(anchor)

    def test_invalid_zoom_is_ignored(self, controller):
        assert controller.zoom_by(0).k == 1.0
        assert controller.zoom_by(float("nan")).k == 1.0

    def test_reset_view(self, controller):
        controller.zoom_by(3.0, (10, 10))
        assert controller.reset_view() == ViewTransform()


class TestClick:
    def test_system_click_selects_system(self, controller, recorder):
        state = controller.click("SYS-A")

        assert state.focus_id == "SYS-A"
        assert controller.selection == SelectionState(selected_system="SYS-A")
        assert recorder.systems == ["SYS-A"]
        assert recorder.flows == [None]

    def test_flow_click_replaces_system_selection(self, controller, recorder):
        controller.click("SYS-A")
        controller.click("flow-F1")

        assert controller.focus_id == "flow-F1"
        assert controller.selection == SelectionState(selected_flow_id="F1")
        assert recorder.flows[-1] == "F1"
        assert recorder.systems[-1] is None

    def test_second_click_clears(self, controller, recorder):
        controller.click("flow-F1")
        state = controller.click("flow-F1")

        assert state == NEUTRAL
        assert controller.selection == SelectionState()
        assert recorder.flows == ["F1", None]

    def test_second_system_click_clears(self, controller, recorder):
        controller.click("SYS-B")
        controller.click("SYS-B")

        assert controller.focus_id is None
        assert recorder.systems == ["SYS-B", None]

    def test_interface_with_single_user_selects_that_flow(self, controller, recorder):
        controller.click("IF-1")

        assert controller.focus_id == "IF-1"
        assert controller.selection == SelectionState(selected_flow_id="F1")
        assert recorder.flows == ["F1"]

    def test_interface_with_many_users_selects_nothing(self, catalogue, recorder):
        shared = FlowRecord.from_dict(
            {
                "id": "F4",
                "source_system": "SYS-C",
                "target_system": "SYS-B",
                "process_steps": [{"step_type": "reception", "interface": "IF-1"}],
            }
        )
        model = build_graph_model([*catalogue, shared], mode=ViewMode.TECHNICAL)
        controller = InteractionController(model, on_select_flow=recorder.flow, on_select_system=recorder.system)

        controller.click("IF-1")

        assert controller.focus_id == "IF-1"
        assert controller.selection == SelectionState()
        assert recorder.flows == [None]

    def test_unknown_node_is_ignored(self, controller, recorder):
        controller.click("SYS-A")
        state = controller.click("nope")

        assert state.focus_id == "SYS-A"
        assert recorder.systems == ["SYS-A"]

    def test_sync_selection_does_not_call_back(self, controller, recorder):
        controller.sync_selection("F3", "SYS-A")

        assert controller.focus_id == "flow-F3"
        assert controller.selection == SelectionState(selected_flow_id="F3")
        assert recorder.flows == [] and recorder.systems == []

        controller.sync_selection(None, None)
        assert controller.highlight == NEUTRAL


class TestDrag:
    def test_drag_pins_at_pointer(self, controller):
        engine = controller.engine
        controller.zoom_by(2.0)
        controller.pan(10, 0)

        assert controller.drag_start("SYS-A", (110, 10))
        assert engine.snapshot().position_of("SYS-A") == (50.0, 5.0)
        assert engine.alpha_target == engine.params["drag_alpha_target"]

        assert controller.drag_move("SYS-A", (210, 10))
        assert engine.snapshot().position_of("SYS-A") == (100.0, 5.0)

        controller.drag_end("SYS-A")
        assert engine.is_pinned("SYS-A")
        assert engine.alpha_target == 0.0

    def test_drag_move_needs_matching_drag(self, controller):
        controller.drag_start("SYS-A", (0, 0))
        assert controller.drag_move("SYS-B", (5, 5)) is False

    def test_non_finite_pointer_leaves_engine_idle(self, controller):
        engine = controller.engine
        engine.run()

        assert controller.drag_start("SYS-A", (float("nan"), 1.0)) is False
        assert controller.drag_move("SYS-A", (5, 5)) is False
        assert not engine.is_pinned("SYS-A")
        assert engine.running is False

        engine.restart()
        engine.run()
        assert engine.running is False

    def test_pin_sequence_re_energizes_neighbors(self, controller):
        engine = controller.engine
        engine.run()
        before = dict(engine.snapshot().positions)
        ticks = engine.ticks

        assert controller.drag_start("SYS-A", (50, 5))
        assert engine.alpha >= engine.params["drag_alpha_target"]
        controller.drag_end("SYS-A", (50, 5))
        snapshot = engine.run()

        assert engine.ticks - ticks > 100
        assert snapshot.running is False
        assert snapshot.alpha < engine.params["alpha_min"]
        moved = [node_id for node_id, xy in snapshot.positions.items() if node_id != "SYS-A" and xy != before[node_id]]
        assert moved

    def test_drag_without_engine(self, technical_model):
        controller = InteractionController(technical_model)
        assert controller.drag_start("SYS-A", (0, 0)) is False


class TestTooltips:
    def test_overview_system(self, overview_model):
        controller = InteractionController(overview_model)

        tooltip = controller.hover_node("SYS-A", (100, 100))

        assert tooltip.visible
        assert (tooltip.x, tooltip.y) == (110, 72)
        assert tooltip.text == "System: SYS-A\nConnected with 2 flows"

    def test_overview_interface(self, overview_model):
        tooltip = InteractionController(overview_model).hover_node("IF-3", (0, 0))
        assert tooltip.text == "Interface: IF-3\nUsed in 1 data flows"

    def test_technical_system(self, controller):
        text = controller.hover_node("SYS-A", (0, 0)).text
        assert "Type: System" in text
        assert "Status: Operational" in text
        assert "Connected Flows: 2" in text

    def test_technical_interface(self, controller):
        text = controller.hover_node("IF-1", (0, 0)).text
        assert "Step Types: reception" in text
        assert "Used In: 1 data flows" in text

    def test_technical_flow(self, controller):
        text = controller.hover_node("flow-F2", (0, 0)).text
        assert text.startswith("F2 (CONTRL)")
        assert "Route: SYS-A → SYS-C" in text
        assert "Steps: Direct" in text
        assert "(simulated)" in text

    def test_overview_edges(self, overview_model):
        controller = InteractionController(overview_model)

        shadow = controller.hover_edge("SYS-A->SYS-B:system_to_system", (0, 0)).text
        plain = controller.hover_edge("SYS-B->IF-1:system_to_interface", (0, 0)).text

        assert shadow == "Data Flow Connection\nNomination\nFormat: NOMINT\nFrom: SYS-A\nTo: SYS-B"
        assert plain == "Connection\nFrom: SYS-B\nTo: IF-1"

    def test_technical_edge(self, controller):
        text = controller.hover_edge("SYS-A->flow-F1:system_to_flow", (0, 0)).text
        assert text.startswith("Connection\nType: system to flow\nFlow: Nomination")

    def test_hover_end_and_unknown(self, controller):
        controller.hover_node("SYS-A", (0, 0))
        assert controller.hover_end() == HIDDEN_TOOLTIP
        assert controller.hover_node("missing", (0, 0)) == HIDDEN_TOOLTIP
