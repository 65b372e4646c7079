"""GitHub version control through the git data REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from ..exceptions import ArtifactExportError

logger = logging.getLogger(__name__)


class GitHubVersionControl:
    """Create one commit per export using blobs, a tree and a ref update.

    Requests run in a worker thread so the event loop is never blocked.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ArtifactExportError("A GitHub token is required to export artifacts")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            }
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ArtifactExportError(f"GitHub {method} {path} failed: {e}") from e
        return resp.json()

    def _commit_sync(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: Dict[str, str],
        message: str,
    ) -> str:
        base = f"/repos/{owner}/{repo}/git"
        ref = self._request("GET", f"{base}/ref/heads/{branch}")
        parent_sha = ref["object"]["sha"]
        parent = self._request("GET", f"{base}/commits/{parent_sha}")

        tree = []
        for path, content in files.items():
            blob = self._request(
                "POST", f"{base}/blobs", json={"content": content, "encoding": "utf-8"}
            )
            tree.append({"path": path, "mode": "100644", "type": "blob", "sha": blob["sha"]})

        new_tree = self._request(
            "POST",
            f"{base}/trees",
            json={"base_tree": parent["tree"]["sha"], "tree": tree},
        )
        commit = self._request(
            "POST",
            f"{base}/commits",
            json={"message": message, "tree": new_tree["sha"], "parents": [parent_sha]},
        )
        self._request(
            "PATCH", f"{base}/refs/heads/{branch}", json={"sha": commit["sha"]}
        )
        logger.info(f"Committed {len(files)} files to {owner}/{repo}@{branch}")
        return commit["sha"]

    async def commit(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: Dict[str, str],
        message: str,
    ) -> str:
        return await asyncio.to_thread(
            self._commit_sync, owner, repo, branch, files, message
        )
