"""Static configuration: palettes, classification rules, physics profiles."""

from __future__ import annotations

import os

GRAPH_CANVAS_WIDTH = 1200
GRAPH_CANVAS_HEIGHT = 700
GRAPH_CARD_HEIGHT = 760
VIS_FONT_FACE = "IBM Plex Sans"
APP_FONTS = {"display": "Fraunces", "body": "IBM Plex Sans", "mono": "IBM Plex Mono"}

UNKNOWN_SYSTEM = "Unknown system"
UNKNOWN_FORMAT = "Unknown"
DEFAULT_GRAY = "#999999"

CONFIG = {
    "API_BASE_URL": os.getenv("FLOWMAP_API_URL", "http://localhost:8000/api").rstrip("/"),
    "API_LEGACY_QUERY_URL": os.getenv("FLOWMAP_LEGACY_QUERY_URL", "http://localhost:8000/query"),
    "API_TIMEOUT": float(os.getenv("FLOWMAP_API_TIMEOUT", "30")),
    # Named palette slots supplied by the host; these are the fallbacks.
    "DEFAULT_PALETTE": {
        "primary": "#C63441",
        "secondary": "#96BEBE",
        "tertiary": "#C0BCAC",
        "accent1": "#E1BA50",
        "accent2": "#677488",
        "background": "#F8FAFC",
        "text": "#1F2A37",
        "lightGray": "#E2E8F0",
    },
    # Ordered: the first rule whose marker occurs in the system name wins.
    "SYSTEM_RULES": [
        {"markers": ("MIRA", "MISA"), "group": 1, "label": "Market Partner System", "slot": "primary"},
        {"markers": ("Marktpartner",), "group": 2, "label": "External Partner", "slot": "tertiary"},
        {"markers": ("GAS-X-GRID",), "group": 3, "label": "Network Operation", "slot": "secondary"},
        {"markers": ("GAS-X-BKN", "GAS-X-BEN"), "group": 4, "label": "Balance Group Network", "slot": "accent1"},
        {"markers": ("VHP",), "group": 5, "label": "Virtual Hub Portal", "slot": "accent2"},
    ],
    "DEFAULT_SYSTEM_GROUP": {"group": 0, "label": "System", "slot": None},
    "HUB_SYSTEM_MARKERS": ("MIRA", "GAS-X", "VHP"),
    "INTERFACE_COLOR": "#96BEBE",
    "FORMAT_COLORS": {
        "NOMINT": "#C63441",
        "CONTRL": "#677488",
        "APERAK": "#96BEBE",
        "ACKNOW": "#E1BA50",
        "NOMRES": "#C0BCAC",
        "ALOCAT": "#E18B50",
        "INVOIC": "#E1BA50",
    },
    "DEFAULT_FORMAT_COLOR": "#AAAAAA",
    "DEFAULT_LINK_COLOR": "#CCCCCC",
    "EDGE_KIND_COLORS": {
        "system_to_interface": "#4682B4",
        "interface_to_flow": "#2E8B57",
        "system_to_system": "#999999",
    },
    "STEP_TYPE_COLORS": {
        "reception": "#4CAF50",
        "delivery": "#FF5722",
        "reception-to-delivery": "#9C27B0",
    },
    "DEFAULT_STEP_COLOR": "#777777",
    "EDGE_DASHES": {"solid": False, "dashed": [5, 5], "dotted": [1, 1]},
    "NODE_SHAPES": {"system": "box", "interface": "hexagon", "flow": "box"},
    # Visual radius per kind; technical mode draws slightly larger nodes.
    "NODE_RADIUS": {
        "overview": {"system": 40, "interface": 30, "flow": 25},
        "technical": {"system": 45, "interface": 35, "flow": 25, "flow_error": 30},
    },
    "LAYOUT_PROFILES": {
        "overview": {
            "link_distance": {
                "system_to_interface": 150,
                "interface_to_flow": 120,
                "system_to_system": 350,
            },
            "default_link_distance": 180,
            "link_strength": 0.4,
            "charge": {"system": -1200.0, "interface": -600.0, "flow": -400.0},
            "collision_radius": {"system": 100.0, "interface": 50.0, "flow": 60.0},
            "collision_strength": 0.7,
            "collision_iterations": 1,
            "level_bands": {1: 0.2, 2: 0.5, 3: 0.8},
            "level_band_strength": 0.9,
            "level_spread_strength": 0.3,
            "center_x_strength": 0.05,
        },
        "technical": {
            "link_distance": {
                "system_to_flow": 180,
                "flow_to_system": 180,
                "flow_to_interface": 130,
                "interface_to_interface": 100,
                "system_to_system": 350,
            },
            "default_link_distance": 200,
            "link_strength": 0.3,
            "charge": {"hub": -2000.0, "system": -1800.0, "interface": -900.0, "flow": -600.0},
            "collision_radius": {"system": 100.0, "interface": 60.0, "flow": 50.0},
            "collision_strength": 0.85,
            "collision_iterations": 2,
            "hub_radius_ratio": 0.40,
            "system_radius_ratio": 0.25,
            "radial_strength": 0.3,
            "center_strength": 0.05,
            "axis_strength": 0.02,
            "cluster_centers": {
                "system": (0.5, 0.3),
                "interface": (0.5, 0.6),
                "flow": (0.5, 0.7),
            },
            "cluster_strength": 0.1,
        },
    },
    "PHYSICS_DEFAULTS": {
        "alpha_start": 0.5,
        "alpha_min": 0.001,
        "alpha_decay": 1 - 0.001 ** (1 / 300),
        "velocity_decay": 0.4,
        "settle_alpha_target": 0.05,
        "settle_window": 3.0,
        "drag_alpha_target": 0.3,
        "max_simulated_time": 60.0,
        "frame_interval": 1 / 60,
        "charge_distance_min": 1.0,
        "convergence_epsilon": 1.0,
    },
    "ANIMATION": {
        "particle_period": 3.0,
        "particle_spacing": 100.0,
        "sequence_period_base": 3.0,
        "step_interval": 1.5,
        "arc_samples": 64,
        "shadow_bow": 40.0,
        "link_offset": 5.0,
        "ui_frame_interval": 0.5,
    },
    "ZOOM_EXTENT": (0.3, 5.0),
    "TOOLTIP_OFFSET": (10.0, -28.0),
}
