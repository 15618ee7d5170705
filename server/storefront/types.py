"""
Shared constants and enums for theme documents and profiles.
"""

from __future__ import annotations

from enum import Enum

DEFAULT_THEME_SETTINGS = {
    "primaryColor": "#6D28D9",
    "fontFamily": "Inter",
    "layoutStyle": "Grid",
}

# Every theme field exists twice, once with a `draft_` and once with a
# `published_` prefix.
THEME_FIELDS = (
    "settings",
    "logo_url",
    "header_bg_color",
    "footer_bg_color",
    "background",
)
DRAFT_FIELDS = tuple(f"draft_{name}" for name in THEME_FIELDS)
PUBLISHED_FIELDS = tuple(f"published_{name}" for name in THEME_FIELDS)

# Keys used by the storefront renderer for the non-settings fields.
RENDER_KEYS = {
    "logo_url": "logoUrl",
    "header_bg_color": "headerBgColor",
    "footer_bg_color": "footerBgColor",
    "background": "background",
}


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = (Role.ADMIN, Role.SUPERADMIN)
