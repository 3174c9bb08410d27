"""Catalogue parsing, filtering, search and graph statistics."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import networkx as nx
import pandas as pd
from flowmap.models import FlowRecord, GraphModel
from flowmap.utils import _dedupe_preserve, profile_time

_PAYLOAD_KEYS = ("data_flows", "flows", "results", "direct_results")
FILTER_FIELDS = ("source_system", "target_system", "format", "transmission_method")


# ------------------------------
# Parsing
# ------------------------------


def _unwrap(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _PAYLOAD_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
        if "id" in payload:
            return [payload]
    return []


def parse_flow_records(payload: Any) -> List[FlowRecord]:
    """Turn an API or file payload into flow records, skipping anything unusable."""
    records: List[FlowRecord] = []
    for raw in _unwrap(payload):
        if not isinstance(raw, dict):
            logging.warning("Skipping non-object flow entry: %r", raw)
            continue
        record = FlowRecord.from_dict(raw)
        if not record.id:
            logging.warning("Skipping flow without id: %s", record.name or "<unnamed>")
            continue
        records.append(record)
    logging.info("Parsed %d flow records", len(records))
    return records


def parse_system_names(payload: Any) -> List[str]:
    names = []
    for item in payload if isinstance(payload, list) else []:
        if isinstance(item, dict):
            item = item.get("name") or item.get("id")
        if isinstance(item, str) and item.strip():
            names.append(item.strip())
    return _dedupe_preserve(names)


def load_flows_from_json(content: str) -> List[FlowRecord]:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Flow file is not valid JSON: {exc}")
    return parse_flow_records(payload)


# ------------------------------
# Filtering and search
# ------------------------------


def unique_values(flows: Iterable[FlowRecord], field_name: str) -> List[str]:
    return sorted({getattr(flow, field_name) for flow in flows if getattr(flow, field_name)})


def filter_flows(flows: Sequence[FlowRecord], **criteria: Optional[str]) -> List[FlowRecord]:
    """Keep flows matching every non-empty criterion (exact match on FILTER_FIELDS)."""
    active = {key: value for key, value in criteria.items() if key in FILTER_FIELDS and value}
    unknown = set(criteria) - set(FILTER_FIELDS)
    if unknown:
        logging.warning("Ignoring unknown flow filters: %s", ", ".join(sorted(unknown)))
    if not active:
        return list(flows)
    return [flow for flow in flows if all(getattr(flow, key) == value for key, value in active.items())]


def _haystack(flow: FlowRecord) -> str:
    parts = [
        flow.id,
        flow.name,
        flow.description,
        flow.source_system,
        flow.target_system,
        flow.format,
        flow.transmission_method,
    ]
    parts.extend(step.interface for step in flow.process_steps)
    return " ".join(part for part in parts if part).lower()


def search_flows(flows: Sequence[FlowRecord], term: str) -> List[FlowRecord]:
    needle = (term or "").strip().lower()
    if not needle:
        return list(flows)
    return [flow for flow in flows if needle in _haystack(flow)]


def find_search_nodes(model: GraphModel, search_term: str) -> List[str]:
    needle = (search_term or "").strip().lower()
    if not needle:
        return []
    matches = []
    for node in model.nodes:
        label = getattr(node, "name", "") or ""
        if needle in node.id.lower() or needle in label.lower():
            matches.append(node.id)
    return matches


def flows_using_interface(flows: Iterable[FlowRecord], interface_name: str) -> List[FlowRecord]:
    return [flow for flow in flows if any(step.interface == interface_name for step in flow.process_steps)]


# ------------------------------
# Statistics
# ------------------------------


def system_relationships(flows: Sequence[FlowRecord], system: str) -> Dict[str, Any]:
    related = [flow for flow in flows if system in (flow.source_id, flow.target_id)]
    return {
        "flows": related,
        "system_name": system,
        "incoming_flows": [flow for flow in related if flow.target_id == system],
        "outgoing_flows": [flow for flow in related if flow.source_id == system],
    }


def system_statistics(flows: Sequence[FlowRecord]) -> pd.DataFrame:
    rows: Dict[str, Dict[str, Any]] = {}
    for flow in flows:
        for system, direction in ((flow.source_id, "outgoing"), (flow.target_id, "incoming")):
            row = rows.setdefault(system, {"system": system, "incoming": 0, "outgoing": 0, "formats": set()})
            row[direction] += 1
            if flow.format:
                row["formats"].add(flow.format)
    records = [
        {**row, "total": row["incoming"] + row["outgoing"], "formats": ", ".join(sorted(row["formats"]))}
        for row in rows.values()
    ]
    df = pd.DataFrame(records, columns=["system", "incoming", "outgoing", "total", "formats"])
    return df.sort_values(["total", "system"], ascending=[False, True]).reset_index(drop=True)


def flows_dataframe(flows: Sequence[FlowRecord]) -> pd.DataFrame:
    rows = [
        {
            "id": flow.id,
            "name": flow.name,
            "source_system": flow.source_system,
            "target_system": flow.target_system,
            "format": flow.format,
            "transmission_method": flow.transmission_method,
            "steps": len(flow.process_steps),
            "interfaces": " → ".join(step.interface for step in flow.interface_steps),
        }
        for flow in flows
    ]
    return pd.DataFrame(
        rows,
        columns=["id", "name", "source_system", "target_system", "format", "transmission_method", "steps", "interfaces"],
    )


@profile_time
def compute_centrality_measures(model: GraphModel) -> Dict[str, Dict[str, float]]:
    G = model.to_networkx()
    n = max(1, G.number_of_nodes())
    if G.number_of_nodes() == 0:
        return {}
    degree = nx.degree_centrality(G)
    try:
        if n > 500:
            betweenness = nx.betweenness_centrality(G, k=min(100, n), seed=42)
        else:
            betweenness = nx.betweenness_centrality(G)
    except Exception as exc:
        logging.error("Betweenness centrality computation failed: %s", exc)
        betweenness = {node: 0.0 for node in G.nodes()}
    closeness = nx.closeness_centrality(G)
    try:
        pagerank = nx.pagerank(G)
    except nx.PowerIterationFailedConvergence as exc:
        logging.error("PageRank computation failed: %s", exc)
        pagerank = {node: 0.0 for node in G.nodes()}

    return {
        node: {
            "degree": degree.get(node, 0.0),
            "betweenness": betweenness.get(node, 0.0),
            "closeness": closeness.get(node, 0.0),
            "pagerank": pagerank.get(node, 0.0),
        }
        for node in G.nodes()
    }
