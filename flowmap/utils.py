"""Generic helpers (colors, classification, formatting, profiling)."""

from __future__ import annotations

import functools
import logging
import math
import re
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flowmap.config import CONFIG, DEFAULT_GRAY

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

_HEX_COLOR_RE = re.compile(r"^[0-9a-fA-F]{6}$")


def _hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    hex_color = hex_color.lstrip("#")
    if len(hex_color) != 6:
        raise ValueError(f"Invalid hex color: {hex_color}")
    return tuple(int(hex_color[i : i + 2], 16) for i in (0, 2, 4))


def _rgb_to_hex(rgb: Tuple[int, int, int]) -> str:
    return "#{:02X}{:02X}{:02X}".format(*rgb)


def _blend_hex(color: str, target: str, ratio: float) -> str:
    ratio = max(0.0, min(1.0, ratio))
    r1, g1, b1 = _hex_to_rgb(color)
    r2, g2, b2 = _hex_to_rgb(target)
    r = round(r1 + (r2 - r1) * ratio)
    g = round(g1 + (g2 - g1) * ratio)
    b = round(b1 + (b2 - b1) * ratio)
    return _rgb_to_hex((r, g, b))


def _normalize_hex_color(value: Any, fallback: str) -> str:
    if not isinstance(value, str):
        return fallback
    text = value.strip()
    if text.startswith("#"):
        text = text[1:]
    if not _HEX_COLOR_RE.match(text):
        return fallback
    return f"#{text.upper()}"


def coerce_palette(palette: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Fill a host palette up to every named slot, dropping malformed colors."""
    defaults = CONFIG["DEFAULT_PALETTE"]
    provided = palette if isinstance(palette, dict) else {}
    return {slot: _normalize_hex_color(provided.get(slot), color) for slot, color in defaults.items()}


def _make_node_color(base: str, border: str = "#333333") -> Dict[str, Any]:
    return {
        "background": base,
        "border": border,
        "highlight": {
            "background": _blend_hex(base, "#FFFFFF", 0.18),
            "border": _blend_hex(base, "#0F172A", 0.45),
        },
        "hover": {
            "background": _blend_hex(base, "#FFFFFF", 0.12),
            "border": _blend_hex(base, "#0F172A", 0.4),
        },
    }


def _relative_luminance(hex_color: str) -> float:
    r, g, b = _hex_to_rgb(hex_color)

    def _channel(c: int) -> float:
        c = c / 255.0
        return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4

    r_l, g_l, b_l = _channel(r), _channel(g), _channel(b)
    return 0.2126 * r_l + 0.7152 * g_l + 0.0722 * b_l


def _contrast_ratio(lum_a: float, lum_b: float) -> float:
    lighter, darker = (lum_a, lum_b) if lum_a >= lum_b else (lum_b, lum_a)
    return (lighter + 0.05) / (darker + 0.05)


def _pick_label_color(bg_hex: str, dark: str = "#0B0B0B", light: str = "#F8F6F1") -> str:
    try:
        lum_bg = _relative_luminance(bg_hex)
        lum_dark = _relative_luminance(dark)
        lum_light = _relative_luminance(light)
    except ValueError:
        return dark
    contrast_dark = _contrast_ratio(lum_bg, lum_dark)
    contrast_light = _contrast_ratio(lum_bg, lum_light)
    return dark if contrast_dark >= contrast_light else light


def _make_edge_color(base: str, opacity: float = 0.6) -> Dict[str, Any]:
    return {
        "color": base,
        "highlight": _blend_hex(base, "#FFFFFF", 0.15),
        "hover": _blend_hex(base, "#FFFFFF", 0.08),
        "opacity": opacity,
    }


def profile_time(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start_time
        logging.info("[PROFILE] Function '%s' executed in %.3f seconds", func.__name__, elapsed)
        return result

    return wrapper


def classify_system(name: Optional[str]) -> Dict[str, Any]:
    """Return the first matching classification rule for a system name."""
    default = CONFIG["DEFAULT_SYSTEM_GROUP"]
    if not isinstance(name, str) or not name:
        return dict(default)
    for rule in CONFIG["SYSTEM_RULES"]:
        if any(marker in name for marker in rule["markers"]):
            return {"group": rule["group"], "label": rule["label"], "slot": rule["slot"]}
    return dict(default)


def is_hub_system(name: Optional[str]) -> bool:
    if not isinstance(name, str):
        return False
    return any(marker in name for marker in CONFIG["HUB_SYSTEM_MARKERS"])


def system_color(name: Optional[str], palette: Optional[Dict[str, str]] = None) -> str:
    slot = classify_system(name)["slot"]
    if slot is None:
        return DEFAULT_GRAY
    resolved = coerce_palette(palette)
    return resolved.get(slot, DEFAULT_GRAY)


def format_color(fmt: Optional[str], fallback: Optional[str] = None) -> str:
    default = fallback if fallback is not None else CONFIG["DEFAULT_FORMAT_COLOR"]
    return CONFIG["FORMAT_COLORS"].get(fmt or "", default)


def step_color(step_type: Optional[str]) -> str:
    if not step_type:
        return CONFIG["DEFAULT_STEP_COLOR"]
    colors = CONFIG["STEP_TYPE_COLORS"]
    if step_type in colors:
        return colors[step_type]
    if "reception" in step_type:
        return colors["reception"]
    if "delivery" in step_type:
        return colors["delivery"]
    return CONFIG["DEFAULT_STEP_COLOR"]


def _truncate_text(text: str, max_len: int = 160) -> str:
    text = (text or "").strip()
    if len(text) <= max_len:
        return text
    return text[: max(0, max_len - 3)].rstrip() + "..."


def _dedupe_preserve(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def _finite(*values: float) -> bool:
    try:
        return all(math.isfinite(float(v)) for v in values)
    except (TypeError, ValueError):
        return False
