"""Shared fixtures: a small flow catalogue and graphs built from it."""

import pytest

from flowmap.graph_builder import build_graph_model
from flowmap.models import FlowRecord, ViewMode


def _flow(**data) -> FlowRecord:
    return FlowRecord.from_dict(data)


@pytest.fixture
def single_hop_flow():
    """SYS-A -> SYS-B through one reception step at IF-1."""
    return _flow(
        id="F1",
        name="Nomination",
        source_system="SYS-A",
        target_system="SYS-B",
        format="NOMINT",
        transmission_method="AS4",
        process_steps=[{"step_type": "reception", "interface": "IF-1"}],
    )


@pytest.fixture
def direct_flow():
    """SYS-A -> SYS-C with no process steps."""
    return _flow(
        id="F2",
        name="Confirmation",
        source_system="SYS-A",
        target_system="SYS-C",
        format="CONTRL",
    )


@pytest.fixture
def multi_hop_flow():
    """MIRA -> SYS-D through three interfaces."""
    return _flow(
        id="F3",
        name="Allocation",
        source_system="MIRA",
        target_system="SYS-D",
        format="ALOCAT",
        transmission_method="SFTP",
        process_steps=[
            {"step_type": "reception", "interface": "IF-2"},
            {"step_type": "transform", "interface": "IF-3"},
            {"step_type": "delivery", "interface": "IF-4"},
        ],
    )


@pytest.fixture
def catalogue(single_hop_flow, direct_flow, multi_hop_flow):
    return [single_hop_flow, direct_flow, multi_hop_flow]


@pytest.fixture
def technical_model(catalogue):
    return build_graph_model(catalogue, mode=ViewMode.TECHNICAL)


@pytest.fixture
def overview_model(catalogue):
    return build_graph_model(catalogue, mode=ViewMode.OVERVIEW)
