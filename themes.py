"""
Card color themes.

Theme tables store bare hex digits (no leading '#'), the same shape the
github-readme-stats themes use, so option overrides and table values can be
treated alike. resolve_colors() turns a theme name plus per-field overrides
into a concrete ColorSet for one render.
"""

from __future__ import annotations
import re
from typing import Dict, Mapping, NamedTuple

COLOR_FIELDS = ("title_color", "text_color", "icon_color", "bg_color", "border_color")
DEFAULT_THEME = "default"

HEX_COLOR = re.compile(r"^#?([A-Fa-f0-9]{3,8})$")

THEMES: Dict[str, Dict[str, str]] = {
    "default": {
        "title_color": "2f80ed",
        "icon_color": "4c71f1",
        "text_color": "434d58",
        "bg_color": "fffefe",
        "border_color": "e4e2e2",
    },
    "default_repocard": {
        "title_color": "2f80ed",
        "icon_color": "586069",
        "text_color": "434d58",
        "bg_color": "fffefe",
    },
    "transparent": {
        "title_color": "006AFF",
        "icon_color": "0579C3",
        "text_color": "417E87",
        "bg_color": "ffffff00",
    },
    "dark": {
        "title_color": "fff",
        "icon_color": "79ff97",
        "text_color": "9f9f9f",
        "bg_color": "151515",
    },
    "radical": {
        "title_color": "fe428e",
        "icon_color": "f8d847",
        "text_color": "a9fef7",
        "bg_color": "141321",
    },
    "merko": {
        "title_color": "abd200",
        "icon_color": "b7d364",
        "text_color": "68b587",
        "bg_color": "0a0f0b",
    },
    "gruvbox": {
        "title_color": "fabd2f",
        "icon_color": "fe8019",
        "text_color": "8ec07c",
        "bg_color": "282828",
    },
    "tokyonight": {
        "title_color": "70a5fd",
        "icon_color": "bf91f3",
        "text_color": "38bdae",
        "bg_color": "1a1b27",
    },
    "onedark": {
        "title_color": "e4bf7a",
        "icon_color": "8eb573",
        "text_color": "df6d74",
        "bg_color": "282c34",
    },
    "cobalt": {
        "title_color": "e683d9",
        "icon_color": "0480ef",
        "text_color": "75eeb2",
        "bg_color": "193549",
    },
    "synthwave": {
        "title_color": "e2e9ec",
        "icon_color": "ef8539",
        "text_color": "e5289e",
        "bg_color": "2b213a",
    },
    "highcontrast": {
        "title_color": "e7f216",
        "icon_color": "00ffff",
        "text_color": "fff",
        "bg_color": "000",
    },
    "dracula": {
        "title_color": "ff6e96",
        "icon_color": "79dafa",
        "text_color": "f8f8f2",
        "bg_color": "282a36",
    },
    "nord": {
        "title_color": "81a1c1",
        "icon_color": "88c0d0",
        "text_color": "d8dee9",
        "bg_color": "2e3440",
    },
    "github_dark": {
        "title_color": "58A6FF",
        "icon_color": "1F6FEB",
        "text_color": "C3D1D9",
        "bg_color": "0D1117",
    },
}

# Fallback table for language dots (linguist colors). The entrypoint can
# replace it with a full table loaded from JSON.
LANGUAGE_COLORS: Dict[str, str] = {
    "JavaScript": "#f1e05a",
    "TypeScript": "#3178c6",
    "Python": "#3572A5",
    "Java": "#b07219",
    "C#": "#178600",
    "C++": "#f34b7d",
    "C": "#555555",
    "Go": "#00ADD8",
    "Rust": "#dea584",
    "Ruby": "#701516",
    "PHP": "#4F5D95",
    "Swift": "#F05138",
    "Kotlin": "#A97BFF",
    "Scala": "#c22d40",
    "Dart": "#00B4AB",
    "Lua": "#000080",
    "R": "#198CE7",
    "Perl": "#0298c3",
    "Haskell": "#5e5086",
    "Elixir": "#6e4a7e",
    "Clojure": "#db5855",
    "Shell": "#89e051",
    "HTML": "#e34c26",
    "CSS": "#563d7c",
    "Vue": "#41b883",
    "Svelte": "#ff3e00",
    "Objective-C": "#438eff",
    "Jupyter Notebook": "#DA5B0B",
}


class ColorSet(NamedTuple):
    title_color: str
    text_color: str
    icon_color: str
    bg_color: str
    border_color: str


def hex_color(value, fallback: str) -> str:
    """Return '#<digits>' for a valid hex override, else the fallback."""
    if isinstance(value, str):
        m = HEX_COLOR.match(value)
        if m:
            return f"#{m.group(1)}"
    return fallback


def resolve_colors(options: Mapping[str, str]) -> ColorSet:
    """Resolve the five card colors from a theme name plus field overrides.

    Unknown or missing theme names select the default table; a field the
    selected theme omits comes from the default table. Malformed overrides
    are ignored rather than rejected.
    """
    fallback = THEMES[DEFAULT_THEME]
    base = THEMES.get(options.get("theme") or DEFAULT_THEME, fallback)
    resolved = {}
    for field in COLOR_FIELDS:
        resolved[field] = hex_color(options.get(field), f"#{base.get(field) or fallback[field]}")
    return ColorSet(**resolved)
