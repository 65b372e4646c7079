from unittest.mock import MagicMock

import pytest
import requests

from maestro.exceptions import ArtifactExportError
from maestro.vcs import GitHubVersionControl


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def _session(*payloads):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = [_response(p) for p in payloads]
    return session


def test_requires_token():
    with pytest.raises(ArtifactExportError):
        GitHubVersionControl("")


@pytest.mark.asyncio
async def test_commit_uses_git_data_api():
    session = _session(
        {"object": {"sha": "parent"}},
        {"tree": {"sha": "base-tree"}},
        {"sha": "blob-1"},
        {"sha": "blob-2"},
        {"sha": "new-tree"},
        {"sha": "new-commit"},
        {"ref": "refs/heads/main"},
    )
    vcs = GitHubVersionControl("token-123", session=session)

    ref = await vcs.commit(
        "acme",
        "reading-list",
        "main",
        {"docs/prd.md": "# PRD", "docs/architecture/architecture.md": "# Arch"},
        "Add workflow artifacts",
    )

    assert ref == "new-commit"
    assert session.headers["Authorization"] == "Bearer token-123"
    calls = [(c.args[0], c.args[1]) for c in session.request.call_args_list]
    base = "https://api.github.com/repos/acme/reading-list/git"
    assert calls == [
        ("GET", f"{base}/ref/heads/main"),
        ("GET", f"{base}/commits/parent"),
        ("POST", f"{base}/blobs"),
        ("POST", f"{base}/blobs"),
        ("POST", f"{base}/trees"),
        ("POST", f"{base}/commits"),
        ("PATCH", f"{base}/refs/heads/main"),
    ]
    tree_body = session.request.call_args_list[4].kwargs["json"]
    assert tree_body["base_tree"] == "base-tree"
    assert [entry["sha"] for entry in tree_body["tree"]] == ["blob-1", "blob-2"]
    commit_body = session.request.call_args_list[5].kwargs["json"]
    assert commit_body["parents"] == ["parent"]
    assert session.request.call_args_list[6].kwargs["json"] == {"sha": "new-commit"}


@pytest.mark.asyncio
async def test_http_errors_become_export_errors():
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = requests.ConnectionError("no route to host")
    vcs = GitHubVersionControl("token-123", session=session)

    with pytest.raises(ArtifactExportError, match="no route to host"):
        await vcs.commit("acme", "reading-list", "main", {"a.md": "x"}, "msg")
