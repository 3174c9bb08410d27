"""HTTP client for the flow catalogue service."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from flowmap.config import CONFIG
from flowmap.utils import profile_time


def _url(path: str) -> str:
    return f"{CONFIG['API_BASE_URL']}/{path.lstrip('/')}"


def _check(resp: requests.Response, what: str) -> Any:
    try:
        resp.raise_for_status()
    except Exception as exc:
        raise RuntimeError(f"{what} failed: {exc}\nBody: {resp.text[:500]}")
    return resp.json()


def _get(path: str, what: str, params: Optional[Dict[str, Any]] = None) -> Any:
    url = _url(path)
    logging.debug("GET %s params=%s", url, params)
    try:
        resp = requests.get(url, params=params or None, timeout=CONFIG["API_TIMEOUT"])
    except requests.RequestException as exc:
        raise RuntimeError(f"{what} failed: {exc}")
    return _check(resp, what)


@profile_time
def fetch_data_flows(params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """All flows, optionally filtered server-side (source_system, target_system, format, ...)."""
    cleaned = {k: v for k, v in (params or {}).items() if v not in (None, "")}
    return _get("data-flows", "Fetching data flows", cleaned)


def fetch_data_flow(flow_id: str) -> Dict[str, Any]:
    return _get(f"data-flows/{quote(str(flow_id), safe='')}", f"Fetching data flow {flow_id}")


def fetch_systems() -> List[Any]:
    return _get("systems", "Fetching systems")


def fetch_formats() -> List[Any]:
    return _get("formats", "Fetching formats")


def fetch_transmission_methods() -> List[Any]:
    return _get("transmission-methods", "Fetching transmission methods")


def normalize_query_response(data: Dict[str, Any], query: str) -> Dict[str, Any]:
    data = data if isinstance(data, dict) else {}
    direct = data.get("direct_results") or data.get("results") or []
    return {
        "direct_results": direct,
        "related_flows": data.get("related_flows") or [],
        "matching_systems": data.get("matching_systems") or [],
        "natural_response": data.get("natural_response") or f"Found {len(direct)} data flows",
        "count": data.get("count") or len(direct),
        "query": data.get("query") or query,
    }


@profile_time
def query_natural_language(query: str) -> Dict[str, Any]:
    """
    POST a free-text question to the query endpoint.
    A 404 from the current endpoint falls back to the legacy one, which expects
    ``{"text": ...}`` instead of ``{"query": ...}``.
    """
    url = _url("query")
    try:
        resp = requests.post(url, json={"query": query}, timeout=CONFIG["API_TIMEOUT"])
        if resp.status_code == 404:
            logging.info("Query endpoint %s not found; trying %s", url, CONFIG["API_LEGACY_QUERY_URL"])
            resp = requests.post(
                CONFIG["API_LEGACY_QUERY_URL"], json={"text": query}, timeout=CONFIG["API_TIMEOUT"]
            )
    except requests.RequestException as exc:
        raise RuntimeError(f"Natural language query failed: {exc}")
    data = _check(resp, "Natural language query")
    return normalize_query_response(data, query)


def fetch_system_relationships(system_name: str) -> Dict[str, Any]:
    flows = _get(
        "data-flows",
        f"Fetching relationships of {system_name}",
        {"source_system": system_name, "target_system": system_name},
    )
    flows = flows if isinstance(flows, list) else []
    return {
        "flows": flows,
        "system_name": system_name,
        "incoming_flows": [f for f in flows if isinstance(f, dict) and f.get("target_system") == system_name],
        "outgoing_flows": [f for f in flows if isinstance(f, dict) and f.get("source_system") == system_name],
    }


def find_flows_by_interface(interface_name: str) -> List[Dict[str, Any]]:
    # No server-side filter exists for interfaces.
    flows = fetch_data_flows()
    return [
        flow
        for flow in flows
        if isinstance(flow, dict)
        and any(
            isinstance(step, dict) and interface_name in str(step.get("interface") or "")
            for step in flow.get("process_steps") or []
        )
    ]
