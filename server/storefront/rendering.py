"""
Helpers that turn a theme document into what the storefront renders.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from storefront.types import RENDER_KEYS

DEFAULT_PRIMARY_COLOR = "#6D28D9"
DEFAULT_HEADER_BG_COLOR = "#FFFFFF"
DEFAULT_FOOTER_BG_COLOR = "#F9FAFB"
DEFAULT_BACKGROUND_COLOR = "#FFFFFF"
DEFAULT_GRADIENT_TO = "#E5E7EB"
DEFAULT_GRADIENT_ANGLE = "to bottom right"
DEFAULT_FONT_FAMILY = "Inter"


def theme_view(document: Dict[str, Any], *, preview: bool = False) -> Dict[str, Any]:
    """
    Flatten one side of a theme document into a render view.

    The settings map is spread at the top level and the remaining fields are
    exposed under their render keys (`logoUrl`, `headerBgColor`, ...).
    `preview` selects the draft side, otherwise the published side is used.
    """
    prefix = "draft_" if preview else "published_"
    view = dict(document.get(f"{prefix}settings") or {})
    for name, render_key in RENDER_KEYS.items():
        view[render_key] = document.get(f"{prefix}{name}")
    return view


def draft_field_render_key(field: str, nested_key: Optional[str] = None) -> str:
    """Map an editor field (`draft_*` or a settings key) to its render key."""
    if field == "draft_settings":
        if not nested_key:
            raise ValueError("draft_settings edits need a nested key")
        return nested_key
    name = field[len("draft_"):] if field.startswith("draft_") else field
    if name not in RENDER_KEYS:
        raise ValueError(f"Unknown draft field: {field}")
    return RENDER_KEYS[name]


def background_style(background: Optional[Dict[str, Any]]) -> Dict[str, str]:
    if not background or not background.get("type"):
        return {"background-color": DEFAULT_BACKGROUND_COLOR}

    kind = background["type"]
    if kind == "gradient":
        angle = background.get("angle") or DEFAULT_GRADIENT_ANGLE
        start = background.get("from") or DEFAULT_BACKGROUND_COLOR
        end = background.get("to") or DEFAULT_GRADIENT_TO
        return {"background-image": f"linear-gradient({angle}, {start}, {end})"}
    if kind == "image":
        return {
            "background-image": f"url({background.get('value')})",
            "background-size": "cover",
            "background-position": "center",
        }
    return {"background-color": background.get("value") or DEFAULT_BACKGROUND_COLOR}


def theme_style(view: Dict[str, Any]) -> Dict[str, str]:
    """CSS custom properties for a render view."""
    font_family = view.get("fontFamily") or DEFAULT_FONT_FAMILY
    return {
        "--primary-color": view.get("primaryColor") or DEFAULT_PRIMARY_COLOR,
        "--header-bg-color": view.get("headerBgColor") or DEFAULT_HEADER_BG_COLOR,
        "--footer-bg-color": view.get("footerBgColor") or DEFAULT_FOOTER_BG_COLOR,
        "font-family": f"var(--font-{font_family.lower()})",
    }
