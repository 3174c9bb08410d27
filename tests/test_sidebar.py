"""
Unit tests for sidebar session helpers.
"""

from flowmap.ui.sidebar import apply_focus_choice


class TestFocusChoice:
    def test_choice_selects_system_and_clears_flow(self):
        session = {"selected_system": None, "selected_flow_id": "F1"}

        apply_focus_choice(session, "SYS-A")

        assert session == {"selected_system": "SYS-A", "selected_flow_id": None}

    def test_none_keeps_current_selection(self):
        session = {"selected_system": None, "selected_flow_id": "F1"}

        apply_focus_choice(session, None)

        assert session == {"selected_system": None, "selected_flow_id": "F1"}

    def test_unchanged_choice_keeps_flow(self):
        session = {"selected_system": "SYS-A", "selected_flow_id": None}

        apply_focus_choice(session, "SYS-A")

        assert session["selected_system"] == "SYS-A"
