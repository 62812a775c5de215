"""
Merged-PR aggregation and organization card rendering.

Pipeline:
- fetch_user_prs: page through the GraphQL search API for a user's merged
  PRs, group them by owning account and rank the owners by merged PR count.
- render_org_card: turn one OrgPRData into a self-contained SVG card
  (avatar and language icon are embedded as data URIs when reachable).

Environment Variables:
  DEBUG : '1' => print [DEBUG] diagnostics.
"""

from __future__ import annotations
import os
import base64
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Mapping

import requests

from themes import resolve_colors

# ------------------ Config ------------------
GRAPHQL_URL = "https://api.github.com/graphql"
DEVICON_BASE_URL = "https://cdn.jsdelivr.net/gh/devicons/devicon@latest/icons"
GQL_TIMEOUT = 40
IMAGE_TIMEOUT = 20
DEFAULT_LANGUAGE_COLOR = "#586069"
DEBUG = os.environ.get("DEBUG", "0") == "1"

CARD_WIDTH = 450
CARD_HEIGHT = 100
AVATAR_SIZE = 60
TEXT_X = 95

def debug(msg: str):
    if DEBUG:
        print(f"[DEBUG] {msg}")

# ------------------ Errors ------------------
class PRCardError(RuntimeError):
    """Base error for the PR card pipeline."""


class ApiFailure(PRCardError):
    """Search request failed (HTTP status or GraphQL errors). Not retried."""

    def __init__(self, message: str, status: Optional[int] = None, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.status = status
        self.errors = errors


class FetchFailure(PRCardError):
    """An image could not be fetched; callers degrade instead of failing."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        detail = f"status {status}" if status is not None else reason
        super().__init__(f"Failed to fetch image: {url} ({detail})")
        self.url = url
        self.status = status


class ValidationFailure(PRCardError):
    """Missing or malformed caller input."""

# ------------------ Data Model ------------------
@dataclass
class RepoTally:
    stars: int
    language: str
    prs: int = 0


@dataclass
class OwnerAccumulator:
    login: str
    owner_type: str
    display_name: str
    avatar_url: str
    repos: Dict[str, RepoTally] = field(default_factory=dict)


@dataclass(frozen=True)
class OrgPRData:
    org: str
    org_display_name: str
    avatar_url: str
    repo: str
    stars: int
    merged_prs: int
    language: str

# ------------------ Exclusion Filter ------------------
def parse_exclude_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated exclude option into lowercased, non-empty terms."""
    if not value:
        return []
    return [entry.strip().lower() for entry in value.split(",") if entry.strip()]

def should_exclude_repo(repo_name: str, exclude_list: List[str]) -> bool:
    if not exclude_list:
        return False
    haystack = repo_name.lower()
    return any(entry in haystack for entry in exclude_list)

# ------------------ Language Icons ------------------
LANG_ICON_SLUGS: Dict[str, str] = {
    "JavaScript": "javascript/javascript-original",
    "TypeScript": "typescript/typescript-original",
    "Python": "python/python-original",
    "Java": "java/java-original",
    "C#": "csharp/csharp-original",
    "C++": "cplusplus/cplusplus-original",
    "C": "c/c-original",
    "Go": "go/go-original",
    "Rust": "rust/rust-original",
    "Ruby": "ruby/ruby-original",
    "PHP": "php/php-original",
    "Swift": "swift/swift-original",
    "Kotlin": "kotlin/kotlin-original",
    "Scala": "scala/scala-original",
    "Dart": "dart/dart-original",
    "Lua": "lua/lua-original",
    "R": "r/r-original",
    "Perl": "perl/perl-original",
    "Haskell": "haskell/haskell-original",
    "Elixir": "elixir/elixir-original",
    "Clojure": "clojure/clojure-original",
    "Shell": "bash/bash-original",
    "HTML": "html5/html5-original",
    "CSS": "css3/css3-original",
    "Vue": "vuejs/vuejs-original",
    "Svelte": "svelte/svelte-original",
    "Objective_C": "objectivec/objectivec-plain",
    "Objective-C": "objectivec/objectivec-plain",
    "Jupyter_Notebook": "jupyter/jupyter-original",
    "Jupyter Notebook": "jupyter/jupyter-original",
}

def language_icon_url(language: Optional[str]) -> Optional[str]:
    """Devicon CDN URL for a language, or None. Keys are matched exactly."""
    slug = LANG_ICON_SLUGS.get(language or "")
    if not slug:
        return None
    return f"{DEVICON_BASE_URL}/{slug}.svg"

def language_color(language: Optional[str], color_map: Mapping[str, str]) -> str:
    return color_map.get(language or "") or DEFAULT_LANGUAGE_COLOR

# ------------------ Display Names ------------------
def get_repo_short_name(repo_name: str) -> str:
    if not repo_name:
        return ""
    return repo_name.split("/")[-1] or repo_name

def resolve_org_display_name(owner_type: str, org_display_name: str, repo_name: str) -> str:
    """Organizations keep their own name; user accounts are named after the main repo."""
    if owner_type == "Organization":
        return org_display_name
    return get_repo_short_name(repo_name) or org_display_name

# ------------------ Asset Fetcher ------------------
def fetch_image_data_uri(url: str) -> str:
    try:
        r = requests.get(url, timeout=IMAGE_TIMEOUT)
    except requests.RequestException as e:
        raise FetchFailure(url, reason=str(e)) from e
    if not r.ok:
        raise FetchFailure(url, status=r.status_code)
    # Keep only the media type; parameters may carry quotes.
    content_type = (r.headers.get("content-type") or "").split(";")[0].strip() or "image/png"
    b64 = base64.b64encode(r.content).decode("ascii")
    return f"data:{content_type};base64,{b64}"

def embed_image(url: Optional[str]) -> Optional[str]:
    """Data URI for url, or None when the image should be left out of the card."""
    if not url:
        return None
    try:
        return fetch_image_data_uri(url)
    except FetchFailure as e:
        debug(str(e))
        return None

# ------------------ PR Aggregator ------------------
SEARCH_MERGED_PRS_QUERY = """
query($searchQuery: String!, $after: String) {
  search(query: $searchQuery, type: ISSUE, first: 100, after: $after) {
    issueCount
    pageInfo { hasNextPage endCursor }
    nodes {
      ... on PullRequest {
        repository {
          nameWithOwner
          isFork
          owner {
            __typename
            login
            avatarUrl
            ... on Organization { name }
          }
          stargazerCount
          primaryLanguage { name }
        }
      }
    }
  }
}"""

def gql(query: str, variables: Dict[str, Any], token: str) -> Dict[str, Any]:
    try:
        r = requests.post(
            GRAPHQL_URL,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"bearer {token}", "Content-Type": "application/json"},
            timeout=GQL_TIMEOUT
        )
    except requests.RequestException as e:
        raise ApiFailure(f"GitHub API request failed: {e}") from e
    if r.status_code != 200:
        raise ApiFailure(f"GitHub API error: {r.status_code} {r.text[:300]}", status=r.status_code)
    try:
        data = r.json()
    except ValueError as e:
        raise ApiFailure(f"GitHub API returned a non-JSON body: {r.text[:300]}", status=r.status_code) from e
    if not isinstance(data, dict):
        raise ApiFailure("GitHub API returned an unexpected body", status=r.status_code)
    if data.get("errors"):
        messages = " | ".join(e.get("message", "") for e in data["errors"])
        raise ApiFailure(f"GitHub GraphQL errors: {messages}", status=r.status_code, errors=data["errors"])
    return data

def accumulate_node(owners: Dict[str, OwnerAccumulator], node: Dict[str, Any],
                    username: str, exclude_list: List[str]):
    repo = (node or {}).get("repository")
    if not repo:
        return
    owner = repo["owner"]
    login = owner["login"]
    repo_name = repo["nameWithOwner"]
    # Contributions to your own forks do not count; forks owned by others do.
    if login.lower() == username.lower() and repo.get("isFork"):
        return
    if should_exclude_repo(repo_name, exclude_list):
        return

    entry = owners.get(login)
    if entry is None:
        entry = owners[login] = OwnerAccumulator(
            login=login,
            owner_type=owner.get("__typename") or "User",
            display_name=owner.get("name") or login,
            avatar_url=owner.get("avatarUrl") or "",
        )
    tally = entry.repos.get(repo_name)
    if tally is None:
        tally = entry.repos[repo_name] = RepoTally(
            stars=repo.get("stargazerCount") or 0,
            language=(repo.get("primaryLanguage") or {}).get("name") or "",
        )
    tally.prs += 1

def summarize_owner(entry: OwnerAccumulator) -> OrgPRData:
    main_name, main = "", None
    for name, tally in entry.repos.items():
        if main is None or tally.stars > main.stars:
            main_name, main = name, tally
    return OrgPRData(
        org=entry.login,
        org_display_name=resolve_org_display_name(entry.owner_type, entry.display_name, main_name),
        avatar_url=entry.avatar_url,
        repo=main_name,
        stars=main.stars if main else 0,
        merged_prs=sum(t.prs for t in entry.repos.values()),
        language=main.language if main else "",
    )

def fetch_user_prs(username: str, token: str, exclude_list: Optional[List[str]] = None) -> List[OrgPRData]:
    """Aggregate a user's merged PRs into one OrgPRData per owning account.

    Pages are fetched one after another following the search cursor. Any
    failing page raises ApiFailure and nothing is returned. The result is
    sorted by merged PR count, descending; ties keep first-seen order.
    """
    normalized = [e.strip().lower() for e in (exclude_list or []) if e and e.strip()]
    owners: Dict[str, OwnerAccumulator] = {}
    search_query = f"type:pr author:{username} is:merged"
    after = None
    page = 0
    while True:
        page += 1
        data = gql(SEARCH_MERGED_PRS_QUERY, {"searchQuery": search_query, "after": after}, token)
        search = (data.get("data") or {}).get("search")
        if not search:
            raise ApiFailure("GitHub API response has no search data", status=200)
        nodes = search.get("nodes") or []
        debug(f"search page {page}: {len(nodes)} nodes")
        for node in nodes:
            accumulate_node(owners, node, username, normalized)
        page_info = search["pageInfo"]
        cursor = page_info.get("endCursor")
        # A missing or repeated cursor would re-request the same page forever.
        if not page_info["hasNextPage"] or not cursor or cursor == after:
            break
        after = cursor

    result = [summarize_owner(entry) for entry in owners.values()]
    result.sort(key=lambda d: d.merged_prs, reverse=True)
    return result

# ------------------ Card Renderer ------------------
STAR_ICON = """<svg viewBox="0 0 16 16" width="16" height="16" fill="#f1e05a">
        <path d="M8 .25a.75.75 0 0 1 .673.418l1.882 3.815 4.21.612a.75.75 0 0 1 .416 1.279l-3.046 2.97.719 4.192a.75.75 0 0 1-1.088.791L8 12.347l-3.766 1.98a.75.75 0 0 1-1.088-.79l.72-4.194L.818 6.374a.75.75 0 0 1 .416-1.28l4.21-.611L7.327.668A.75.75 0 0 1 8 .25z"/>
      </svg>"""

MERGED_ICON = """<svg viewBox="0 0 16 16" width="16" height="16" fill="#8957e5">
        <path d="M5.45 5.154A4.25 4.25 0 0 0 9.25 7.5h1.378a2.251 2.251 0 1 1 0 1.5H9.25A5.734 5.734 0 0 1 5 7.123v3.505a2.25 2.25 0 1 1-1.5 0V5.372a2.25 2.25 0 1 1 1.95-.218ZM4.25 13.5a.75.75 0 1 0 0-1.5.75.75 0 0 0 0 1.5Zm8.5-4.5a.75.75 0 1 0 0-1.5.75.75 0 0 0 0 1.5ZM5 3.25a.75.75 0 1 0 0 .005V3.25Z"/>
      </svg>"""

def escape_xml(text: str) -> str:
    return (str(text)
            .replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&#39;"))

def format_count(num: Optional[int]) -> str:
    if not num:
        return "0"
    if num >= 1000:
        return f"{num / 1000:.1f}k"
    return str(num)

def avatar_request_url(avatar_url: str) -> str:
    if not avatar_url:
        return ""
    sep = "&" if "?" in avatar_url else "?"
    return f"{avatar_url}{sep}s={AVATAR_SIZE * 2}"

def avatar_element(data_uri: Optional[str], clip_id: str) -> str:
    if not data_uri:
        return ""
    return f"""<defs>
    <clipPath id="{clip_id}">
      <rect x="20" y="20" width="{AVATAR_SIZE}" height="{AVATAR_SIZE}" rx="8"/>
    </clipPath>
  </defs>
  <rect x="20" y="20" width="{AVATAR_SIZE}" height="{AVATAR_SIZE}" rx="8" fill="#fff"/>
  <image x="20" y="20" width="{AVATAR_SIZE}" height="{AVATAR_SIZE}" href="{escape_xml(data_uri)}" clip-path="url(#{clip_id})"/>"""

def language_element(language: str, icon_data_uri: Optional[str], color: str) -> str:
    if not language:
        return ""
    label = escape_xml(language)
    if icon_data_uri:
        return (f'<image x="{CARD_WIDTH - 105}" y="23" width="16" height="16" href="{escape_xml(icon_data_uri)}"/>\n'
                f'  <text x="{CARD_WIDTH - 85}" y="36" class="lang">{label}</text>')
    return (f'<circle cx="{CARD_WIDTH - 100}" cy="32" r="6" fill="{escape_xml(color)}"/>\n'
            f'  <text x="{CARD_WIDTH - 88}" y="36" class="lang">{label}</text>')

def render_org_card(data: OrgPRData, options: Mapping[str, str],
                    language_colors: Optional[Mapping[str, str]] = None) -> str:
    """Render one owner's card as a 450x100 SVG document.

    Image fetch failures, unknown languages and missing star counts drop the
    affected element; they never make the render fail.
    """
    options = options or {}
    colors = resolve_colors(options)
    border_radius = escape_xml(options.get("border_radius") or "4.5")
    stroke_opacity = 0 if options.get("hide_border") == "true" else 1

    org_id = escape_xml(data.org or "")
    display_name = escape_xml(data.org_display_name or data.org or "")
    language = data.language or ""

    avatar_uri = embed_image(avatar_request_url(data.avatar_url))
    icon_uri = embed_image(language_icon_url(language))
    lang_color = language_color(language, language_colors or {})

    return f"""<svg
  width="{CARD_WIDTH}" height="{CARD_HEIGHT}"
  viewBox="0 0 {CARD_WIDTH} {CARD_HEIGHT}"
  fill="none"
  xmlns="http://www.w3.org/2000/svg"
  role="img"
  aria-labelledby="title-{org_id}"
>
  <title id="title-{org_id}">{display_name} PR Card</title>
  <style>
    .org-name {{
      font: 600 16px 'Segoe UI', Ubuntu, Sans-Serif;
      fill: {colors.title_color};
    }}
    .stat {{
      font: 400 13px 'Segoe UI', Ubuntu, Sans-Serif;
      fill: {colors.text_color};
    }}
    .lang {{
      font: 400 13px 'Segoe UI', Ubuntu, Sans-Serif;
      fill: {colors.text_color};
    }}
  </style>
  <rect
    x="0.5" y="0.5"
    rx="{border_radius}"
    width="{CARD_WIDTH - 1}" height="{CARD_HEIGHT - 1}"
    fill="{colors.bg_color}"
    stroke="{colors.border_color}"
    stroke-opacity="{stroke_opacity}"
  />
  {avatar_element(avatar_uri, f"avatar-clip-{org_id}")}
  <text x="{TEXT_X}" y="42" class="org-name">{display_name}</text>
  {language_element(language, icon_uri, lang_color)}
  <g transform="translate({TEXT_X}, 58)">
    <g transform="translate(0, 0)">
      {STAR_ICON}
      <text x="20" y="13" class="stat">{format_count(data.stars)}</text>
    </g>
    <g transform="translate(80, 0)">
      {MERGED_ICON}
      <text x="20" y="13" class="stat">{data.merged_prs or 0} merged</text>
    </g>
  </g>
</svg>"""
