"""
Unit tests for the catalogue HTTP client (requests is mocked throughout).
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from flowmap import api
from flowmap.config import CONFIG


def _response(payload=None, status=200, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


class TestGetEndpoints:
    @patch("flowmap.api.requests.get")
    def test_fetch_data_flows_drops_empty_params(self, mock_get):
        mock_get.return_value = _response([{"id": "F1"}])

        flows = api.fetch_data_flows({"source_system": "SYS-A", "format": "", "target_system": None})

        assert flows == [{"id": "F1"}]
        url = mock_get.call_args.args[0]
        assert url == f"{CONFIG['API_BASE_URL']}/data-flows"
        assert mock_get.call_args.kwargs["params"] == {"source_system": "SYS-A"}
        assert mock_get.call_args.kwargs["timeout"] == CONFIG["API_TIMEOUT"]

    @patch("flowmap.api.requests.get")
    def test_fetch_data_flow_quotes_id(self, mock_get):
        mock_get.return_value = _response({"id": "A/B"})

        api.fetch_data_flow("A/B")

        assert mock_get.call_args.args[0].endswith("/data-flows/A%2FB")

    @pytest.mark.parametrize(
        "func,path",
        [
            (api.fetch_systems, "systems"),
            (api.fetch_formats, "formats"),
            (api.fetch_transmission_methods, "transmission-methods"),
        ],
    )
    @patch("flowmap.api.requests.get")
    def test_lookup_endpoints(self, mock_get, func, path):
        mock_get.return_value = _response(["x"])
        assert func() == ["x"]
        assert mock_get.call_args.args[0].endswith(f"/{path}")

    @patch("flowmap.api.requests.get")
    def test_http_error_becomes_runtime_error(self, mock_get):
        mock_get.return_value = _response(status=500, text="upstream exploded")

        with pytest.raises(RuntimeError) as excinfo:
            api.fetch_systems()

        assert "Fetching systems failed" in str(excinfo.value)
        assert "upstream exploded" in str(excinfo.value)

    @patch("flowmap.api.requests.get")
    def test_connection_error_becomes_runtime_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RuntimeError, match="refused"):
            api.fetch_data_flows()

    @patch("flowmap.api.requests.get")
    def test_system_relationships(self, mock_get):
        mock_get.return_value = _response(
            [
                {"id": "F1", "source_system": "SYS-A", "target_system": "SYS-B"},
                {"id": "F2", "source_system": "SYS-C", "target_system": "SYS-A"},
            ]
        )

        result = api.fetch_system_relationships("SYS-A")

        assert mock_get.call_args.kwargs["params"] == {"source_system": "SYS-A", "target_system": "SYS-A"}
        assert result["system_name"] == "SYS-A"
        assert [f["id"] for f in result["outgoing_flows"]] == ["F1"]
        assert [f["id"] for f in result["incoming_flows"]] == ["F2"]

    @patch("flowmap.api.requests.get")
    def test_find_flows_by_interface(self, mock_get):
        mock_get.return_value = _response(
            [
                {"id": "F1", "process_steps": [{"interface": "AS4-Gateway"}]},
                {"id": "F2", "process_steps": [{"interface": "SFTP"}]},
                {"id": "F3"},
            ]
        )

        assert [f["id"] for f in api.find_flows_by_interface("AS4")] == ["F1"]


class TestNaturalLanguageQuery:
    @patch("flowmap.api.requests.post")
    def test_query(self, mock_post):
        mock_post.return_value = _response({"results": [{"id": "F1"}], "natural_response": "One flow"})

        result = api.query_natural_language("flows from SYS-A")

        assert mock_post.call_args.kwargs["json"] == {"query": "flows from SYS-A"}
        assert result["direct_results"] == [{"id": "F1"}]
        assert result["natural_response"] == "One flow"
        assert result["count"] == 1
        assert result["query"] == "flows from SYS-A"

    @patch("flowmap.api.requests.post")
    def test_falls_back_to_legacy_endpoint(self, mock_post):
        mock_post.side_effect = [_response(status=404), _response({"direct_results": []})]

        result = api.query_natural_language("anything")

        assert mock_post.call_count == 2
        legacy_call = mock_post.call_args_list[1]
        assert legacy_call.args[0] == CONFIG["API_LEGACY_QUERY_URL"]
        assert legacy_call.kwargs["json"] == {"text": "anything"}
        assert result["natural_response"] == "Found 0 data flows"

    @patch("flowmap.api.requests.post")
    def test_query_error(self, mock_post):
        mock_post.return_value = _response(status=502, text="bad gateway")

        with pytest.raises(RuntimeError, match="Natural language query failed"):
            api.query_natural_language("anything")


class TestNormalizeQueryResponse:
    def test_defaults(self):
        result = api.normalize_query_response(None, "q")
        assert result == {
            "direct_results": [],
            "related_flows": [],
            "matching_systems": [],
            "natural_response": "Found 0 data flows",
            "count": 0,
            "query": "q",
        }
