"""
Unit tests for catalogue parsing, filtering and statistics.
"""

import pytest

from flowmap.data_processing import (
    compute_centrality_measures,
    filter_flows,
    find_search_nodes,
    flows_dataframe,
    flows_using_interface,
    load_flows_from_json,
    parse_flow_records,
    parse_system_names,
    search_flows,
    system_relationships,
    system_statistics,
    unique_values,
)
from flowmap.models import GraphModel, ViewMode


class TestParsing:
    def test_list_payload(self):
        records = parse_flow_records(
            [
                {
                    "id": 7,
                    "n": "Short name",
                    "source_system": " SYS-A ",
                    "target_system": "SYS-B",
                    "process_steps": [{"step_type": "Reception", "interface": "IF-1", "position": "2"}],
                }
            ]
        )

        assert len(records) == 1
        record = records[0]
        assert record.id == "7"
        assert record.name == "Short name"
        assert record.source_system == "SYS-A"
        assert record.process_steps[0].step_type == "reception"
        assert record.process_steps[0].position == 2

    @pytest.mark.parametrize("key", ["data_flows", "flows", "results", "direct_results"])
    def test_wrapped_payloads(self, key):
        records = parse_flow_records({key: [{"id": "F1"}, {"id": "F2"}]})
        assert [r.id for r in records] == ["F1", "F2"]

    def test_single_object(self):
        assert [r.id for r in parse_flow_records({"id": "F1"})] == ["F1"]

    def test_unusable_entries_are_skipped(self):
        records = parse_flow_records([{"id": "F1"}, "junk", {"name": "no id"}, {"id": "  "}])
        assert [r.id for r in records] == ["F1"]

    def test_malformed_steps(self):
        records = parse_flow_records([{"id": "F1", "process_steps": "not a list"}])
        assert records[0].process_steps == ()

    def test_system_names(self):
        names = parse_system_names(["SYS-A", {"name": "SYS-B"}, {"id": "SYS-C"}, "", "SYS-A", 5])
        assert names == ["SYS-A", "SYS-B", "SYS-C"]

    def test_load_json(self):
        records = load_flows_from_json('{"data_flows": [{"id": "F1"}]}')
        assert records[0].id == "F1"

    def test_load_invalid_json(self):
        with pytest.raises(ValueError, match="not valid JSON"):
            load_flows_from_json("{broken")

    def test_round_trip_through_dict(self, multi_hop_flow):
        assert parse_flow_records([multi_hop_flow.to_dict()]) == [multi_hop_flow]


class TestFiltering:
    def test_filter_by_field(self, catalogue):
        assert [f.id for f in filter_flows(catalogue, source_system="SYS-A")] == ["F1", "F2"]
        assert [f.id for f in filter_flows(catalogue, source_system="SYS-A", format="CONTRL")] == ["F2"]

    def test_empty_and_unknown_criteria(self, catalogue):
        assert filter_flows(catalogue, format="", colour="red") == catalogue

    def test_unique_values(self, catalogue):
        assert unique_values(catalogue, "transmission_method") == ["AS4", "SFTP"]

    def test_search_matches_interfaces_case_insensitively(self, catalogue):
        assert [f.id for f in search_flows(catalogue, "if-3")] == ["F3"]
        assert search_flows(catalogue, "  ") == catalogue

    def test_find_search_nodes(self, overview_model):
        assert find_search_nodes(overview_model, "sys-c") == ["SYS-C"]
        assert find_search_nodes(overview_model, "allocation") == ["flow-F3"]
        assert find_search_nodes(overview_model, "") == []

    def test_flows_using_interface(self, catalogue):
        assert [f.id for f in flows_using_interface(catalogue, "IF-4")] == ["F3"]


class TestStatistics:
    def test_system_relationships(self, catalogue):
        related = system_relationships(catalogue, "SYS-A")

        assert [f.id for f in related["flows"]] == ["F1", "F2"]
        assert related["incoming_flows"] == []
        assert [f.id for f in related["outgoing_flows"]] == ["F1", "F2"]

    def test_system_statistics(self, catalogue):
        df = system_statistics(catalogue)

        assert list(df.columns) == ["system", "incoming", "outgoing", "total", "formats"]
        top = df.iloc[0]
        assert top["system"] == "SYS-A"
        assert top["outgoing"] == 2
        assert top["formats"] == "CONTRL, NOMINT"

    def test_flows_dataframe(self, catalogue):
        df = flows_dataframe(catalogue)

        assert len(df) == 3
        assert df.loc[df["id"] == "F3", "interfaces"].item() == "IF-2 → IF-3 → IF-4"
        assert df.loc[df["id"] == "F2", "steps"].item() == 0

    def test_centrality(self, technical_model):
        measures = compute_centrality_measures(technical_model)

        assert set(measures) == set(technical_model.node_ids())
        assert set(measures["SYS-A"]) == {"degree", "betweenness", "closeness", "pagerank"}
        assert measures["flow-F3"]["betweenness"] > 0

    def test_centrality_empty_graph(self):
        assert compute_centrality_measures(GraphModel(mode=ViewMode.OVERVIEW)) == {}
