"""
Aggregation tests: mocked GraphQL search pages fed through fetch_user_prs.

Run:  pytest -q
"""
from unittest.mock import patch

import pytest
import requests

import prs
from prs import ApiFailure, fetch_user_prs


def repo_node(name, owner_type="User", is_fork=False, stars=0, language=None, org_name=None):
    owner_login = name.split("/")[0]
    owner = {
        "__typename": owner_type,
        "login": owner_login,
        "avatarUrl": f"https://avatars.githubusercontent.com/{owner_login}",
    }
    if org_name is not None:
        owner["name"] = org_name
    return {
        "repository": {
            "nameWithOwner": name,
            "isFork": is_fork,
            "owner": owner,
            "stargazerCount": stars,
            "primaryLanguage": {"name": language} if language else None,
        }
    }


def page(nodes, cursor=None, has_next=False):
    return {
        "data": {
            "search": {
                "issueCount": len(nodes),
                "nodes": nodes,
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
            }
        }
    }


class FakeResp:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = str(payload)
    def json(self):
        if isinstance(self.payload, str):
            raise ValueError("Expecting value")
        return self.payload


def pages_post(*pages):
    """side_effect serving pages keyed by the 'after' cursor."""
    by_cursor = {}
    prev = None
    for p in pages:
        by_cursor[prev] = p
        prev = p["data"]["search"]["pageInfo"]["endCursor"]

    def fake_post(url, json=None, headers=None, timeout=40):
        return FakeResp(by_cursor[json["variables"]["after"]])
    return fake_post


def test_skips_own_forks_and_counts_duplicate_prs():
    nodes = [
        repo_node("octo/hello-world", stars=120, language="JavaScript", org_name="Octo"),
        repo_node("octo/hello-world", stars=120, language="JavaScript", org_name="Octo"),
        repo_node("octo/forked", is_fork=True, stars=80, language="TypeScript"),
    ]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert len(data) == 1
    assert data[0].org == "octo"
    assert data[0].repo == "octo/hello-world"
    assert data[0].merged_prs == 2
    assert data[0].org_display_name == "hello-world"
    assert data[0].language == "JavaScript"
    assert data[0].stars == 120


def test_forks_owned_by_others_still_count():
    nodes = [repo_node("someone/their-fork", is_fork=True, stars=3)]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert [d.repo for d in data] == ["someone/their-fork"]


def test_follows_cursor_and_sums_all_repos_per_owner():
    first = page([
        repo_node("python/typing_extensions", "Organization", stars=400, language="Python", org_name="Python"),
        repo_node("pallets/flask", "Organization", stars=65000, language="Python", org_name="Pallets"),
    ], cursor="c1", has_next=True)
    second = page([
        repo_node("python/cpython", "Organization", stars=60000, language="Python", org_name="Python"),
        repo_node("python/typing_extensions", "Organization", stars=400, language="Python", org_name="Python"),
    ])
    with patch("requests.post", side_effect=pages_post(first, second)) as mock_post:
        data = fetch_user_prs("octo", "token")

    assert mock_post.call_count == 2
    cursors = [c.kwargs["json"]["variables"]["after"] for c in mock_post.call_args_list]
    assert cursors == [None, "c1"]
    query = mock_post.call_args_list[0].kwargs["json"]["variables"]["searchQuery"]
    assert "author:octo" in query and "is:merged" in query
    assert mock_post.call_args_list[0].kwargs["headers"]["Authorization"] == "bearer token"

    assert [d.org for d in data] == ["python", "pallets"]
    python = data[0]
    assert python.merged_prs == 3
    assert python.repo == "python/cpython"
    assert python.stars == 60000
    assert python.org_display_name == "Python"


def test_sorted_descending_with_stable_ties():
    nodes = [
        repo_node("aaa/one", stars=1),
        repo_node("bbb/two", stars=1),
        repo_node("ccc/three", stars=1),
        repo_node("ccc/three", stars=1),
        repo_node("bbb/two", stars=1),
        repo_node("ddd/four", stars=1),
    ]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert [d.org for d in data] == ["bbb", "ccc", "aaa", "ddd"]
    counts = [d.merged_prs for d in data]
    assert counts == sorted(counts, reverse=True)


def test_main_repo_ties_keep_first_seen():
    nodes = [
        repo_node("acme/first", "Organization", stars=10, org_name="Acme"),
        repo_node("acme/second", "Organization", stars=10, org_name="Acme"),
    ]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert data[0].repo == "acme/first"
    assert data[0].merged_prs == 2


def test_unstarred_user_repo_still_names_the_card():
    nodes = [repo_node("someone/tiny", stars=0)]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert data[0].repo == "someone/tiny"
    assert data[0].org_display_name == "tiny"
    assert data[0].language == ""


def test_skips_nodes_without_repository():
    nodes = [{}, {"repository": None}, None, repo_node("acme/widgets", "Organization", stars=5, org_name="Acme")]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert len(data) == 1
    assert data[0].merged_prs == 1


def test_exclude_list_is_case_insensitive():
    nodes = [
        repo_node("pydantic/pydantic-core", "Organization", stars=1000, org_name="Pydantic"),
        repo_node("python/cpython", "Organization", stars=60000, org_name="Python"),
    ]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token", [" PyDantic "])
    assert [d.org for d in data] == ["python"]


def test_org_without_name_uses_login():
    nodes = [repo_node("acme/widgets", "Organization", stars=5)]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert data[0].org_display_name == "acme"


def test_http_error_aborts_without_retry():
    with patch("requests.post", return_value=FakeResp({"message": "Bad credentials"}, status_code=401)) as mock_post:
        with pytest.raises(ApiFailure) as excinfo:
            fetch_user_prs("octo", "token")
    assert excinfo.value.status == 401
    assert mock_post.call_count == 1


def test_graphql_errors_abort_whole_run():
    first = page([repo_node("acme/widgets", "Organization", stars=5)], cursor="c1", has_next=True)
    errors = {"errors": [{"message": "API rate limit exceeded"}]}
    responses = [FakeResp(first), FakeResp(errors)]
    with patch("requests.post", side_effect=responses):
        with pytest.raises(ApiFailure) as excinfo:
            fetch_user_prs("octo", "token")
    assert excinfo.value.errors == errors["errors"]
    assert "rate limit" in str(excinfo.value)


def test_summarize_owner_empty_accumulator():
    entry = prs.OwnerAccumulator(login="ghost", owner_type="User", display_name="ghost", avatar_url="")
    summary = prs.summarize_owner(entry)
    assert summary.repo == ""
    assert summary.org_display_name == "ghost"
    assert summary.merged_prs == 0


def test_own_fork_check_ignores_login_case():
    nodes = [repo_node("Octo/fork", is_fork=True, stars=4)]
    with patch("requests.post", side_effect=pages_post(page(nodes))):
        data = fetch_user_prs("octo", "token")
    assert data == []


def test_transport_error_is_api_failure():
    with patch("requests.post", side_effect=requests.Timeout("slow")) as mock_post:
        with pytest.raises(ApiFailure) as excinfo:
            fetch_user_prs("octo", "token")
    assert "slow" in str(excinfo.value)
    assert mock_post.call_count == 1


def test_non_json_body_is_api_failure():
    with patch("requests.post", return_value=FakeResp("<html>gateway</html>")):
        with pytest.raises(ApiFailure) as excinfo:
            fetch_user_prs("octo", "token")
    assert excinfo.value.status == 200
    assert "gateway" in str(excinfo.value)


def test_null_data_is_api_failure():
    with patch("requests.post", return_value=FakeResp({"data": None})):
        with pytest.raises(ApiFailure):
            fetch_user_prs("octo", "token")


def test_stops_when_cursor_missing_or_repeated():
    stuck = page([repo_node("acme/widgets", "Organization", stars=5)], cursor=None, has_next=True)
    with patch("requests.post", return_value=FakeResp(stuck)) as mock_post:
        data = fetch_user_prs("octo", "token")
    assert mock_post.call_count == 1
    assert data[0].merged_prs == 1

    first = page([repo_node("acme/widgets", "Organization", stars=5)], cursor="c1", has_next=True)
    with patch("requests.post", return_value=FakeResp(first)) as mock_post:
        data = fetch_user_prs("octo", "token")
    assert mock_post.call_count == 2
    assert data[0].merged_prs == 2
