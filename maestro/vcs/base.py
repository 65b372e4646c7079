"""Version-control collaborator contract."""

from __future__ import annotations

from typing import Dict, Protocol


class VersionControl(Protocol):
    """Writes a set of files to a repository branch as a single commit."""

    async def commit(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: Dict[str, str],
        message: str,
    ) -> str:
        """Commit ``files`` (path to content) and return the commit reference."""
