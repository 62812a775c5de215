#!/usr/bin/env python3
"""
Organization PR card generator.

Writes one SVG card per account the user has merged pull requests into.
Cards for other accounts come first; cards for the user's own (non-fork)
repositories are written with an 'own-' infix.

Environment Variables:
  PAT_1 / ACCESS_TOKEN     : Personal token (first one set wins). Falls back to GITHUB_TOKEN in Actions.
  USER_NAME                : GitHub login. Defaults to repository owner.
  CARD_OPTIONS             : Query string ('theme=dark&exclude=foo,bar') or JSON object.
  OUTPUT_PATH              : Output file prefix. Default 'profile/prs-'.
  LANGUAGE_COLORS_FILE     : Optional JSON map of language -> CSS color.
  DEBUG                    : '1' => verbose output.

Card options: username, theme, title_color, text_color, icon_color, bg_color,
border_color, border_radius, hide_border, exclude.
"""

from __future__ import annotations
import os
import re
import sys
import json
import time
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
from urllib.parse import parse_qsl

from lxml import etree

from prs import (
    ApiFailure,
    OrgPRData,
    ValidationFailure,
    debug,
    fetch_user_prs,
    parse_exclude_list,
    render_org_card,
)
from themes import LANGUAGE_COLORS

# ------------------ Config & Env ------------------
GITHUB_REPOSITORY = os.environ.get("GITHUB_REPOSITORY", "")
REPO_OWNER = (os.environ.get("GITHUB_REPOSITORY_OWNER")
              or (GITHUB_REPOSITORY.split("/")[0] if "/" in GITHUB_REPOSITORY else ""))
USER_NAME = os.environ.get("USER_NAME", "")
ACCESS_TOKEN = os.environ.get("PAT_1") or os.environ.get("ACCESS_TOKEN") or os.environ.get("GITHUB_TOKEN")
CARD_OPTIONS = os.environ.get("CARD_OPTIONS", "")
OUTPUT_PATH = os.environ.get("OUTPUT_PATH") or os.path.join("profile", "prs-")
LANGUAGE_COLORS_FILE = os.environ.get("LANGUAGE_COLORS_FILE", "")

SAFE_NAME = re.compile(r"[^a-zA-Z0-9._-]")

# ------------------ Options ------------------
def normalize_options(options: Dict[str, Any]) -> Dict[str, str]:
    normalized = {}
    for key, val in options.items():
        if isinstance(val, (list, tuple)):
            normalized[key] = ",".join(str(v) for v in val)
        elif val is None:
            continue
        elif isinstance(val, bool):
            # JSON true/false arrive as bools; options compare against "true"
            normalized[key] = "true" if val else "false"
        else:
            normalized[key] = str(val)
    return normalized

def parse_options(value: Optional[str]) -> Dict[str, str]:
    """Parse card options from a query string or a JSON object."""
    if not value:
        return {}
    trimmed = value.strip()
    options: Dict[str, Any] = {}
    if trimmed.startswith("{"):
        try:
            options.update(json.loads(trimmed))
        except ValueError as e:
            raise ValidationFailure("Invalid JSON in options.") from e
    else:
        query_string = trimmed[1:] if trimmed.startswith("?") else trimmed
        for key, val in parse_qsl(query_string, keep_blank_values=True):
            if options.get(key):
                options[key] = f"{options[key]},{val}"
            else:
                options[key] = val
    return normalize_options(options)

def validate_options(options: Dict[str, str], repo_owner: str):
    if not options.get("username") and repo_owner:
        options["username"] = repo_owner
        print("[WARN] username not provided; defaulting to repository owner.")
    if not options.get("username"):
        raise ValidationFailure("username is required for the prs card.")

# ------------------ Output ------------------
def load_language_colors(path: str) -> Dict[str, str]:
    if not path:
        return dict(LANGUAGE_COLORS)
    try:
        with open(path, "r", encoding="utf-8") as f:
            colors = json.load(f)
    except (OSError, ValueError) as e:
        print(f"[WARN] could not load language colors from {path}: {e}")
        return dict(LANGUAGE_COLORS)
    if not isinstance(colors, dict):
        print(f"[WARN] {path} is not a JSON object; using built-in language colors.")
        return dict(LANGUAGE_COLORS)
    return colors

def split_own_cards(cards: List[OrgPRData], username: str) -> Tuple[List[OrgPRData], List[OrgPRData]]:
    login = username.lower()
    external = [c for c in cards if c.org.lower() != login]
    own = [c for c in cards if c.org.lower() == login]
    return external, own

def safe_file_name(card: OrgPRData) -> str:
    return SAFE_NAME.sub("-", card.repo or card.org)

def write_card(path: Path, svg: str):
    # Refuse to write a card that is not well-formed XML.
    etree.fromstring(svg.encode("utf-8"))
    path.write_text(svg, encoding="utf-8")

# ------------------ Main ------------------
def main() -> int:
    t0 = time.time()
    try:
        options = parse_options(CARD_OPTIONS)
        if USER_NAME and not options.get("username"):
            options["username"] = USER_NAME
        validate_options(options, REPO_OWNER)
        if not ACCESS_TOKEN:
            raise ValidationFailure("A GitHub token is required for the PRs card.")
        username = options["username"]

        print(f"Collecting merged PRs for {username}...")
        cards = fetch_user_prs(username, ACCESS_TOKEN, parse_exclude_list(options.get("exclude")))
    except (ValidationFailure, ApiFailure) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if not cards:
        print("[WARN] No merged PRs found for user in external organizations or own repositories.")

    language_colors = load_language_colors(LANGUAGE_COLORS_FILE)
    prefix_path = Path(OUTPUT_PATH).resolve()
    out_dir = prefix_path.parent if not OUTPUT_PATH.endswith(("/", os.sep)) else prefix_path
    prefix = prefix_path.name if out_dir != prefix_path else ""
    out_dir.mkdir(parents=True, exist_ok=True)

    external, own = split_own_cards(cards, username)
    jobs = [(c, f"{prefix}{safe_file_name(c)}.svg") for c in external]
    jobs += [(c, f"{prefix}own-{safe_file_name(c)}.svg") for c in own]

    written = []
    for card, file_name in jobs:
        path = out_dir / file_name
        try:
            svg = render_org_card(card, options, language_colors)
            write_card(path, svg)
        except (OSError, etree.XMLSyntaxError) as e:
            print(f"[WARN] failed to write card for {card.org}: {e}")
            continue
        debug(f"{card.org}: repo={card.repo} stars={card.stars} merged={card.merged_prs}")
        print(f"Wrote {path}")
        written.append(path)

    print("Done in {:.2f}s ({} cards)".format(time.time() - t0, len(written)))
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
