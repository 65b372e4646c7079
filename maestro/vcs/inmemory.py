"""In-memory version control for local runs and tests."""

from __future__ import annotations

import hashlib
from typing import Dict, List

from pydantic import BaseModel, Field


class RecordedCommit(BaseModel):
    ref: str
    owner: str
    repo: str
    branch: str
    message: str
    files: Dict[str, str] = Field(default_factory=dict)


class InMemoryVersionControl:
    """Record commits instead of pushing them anywhere."""

    def __init__(self) -> None:
        self.commits: List[RecordedCommit] = []

    async def commit(
        self,
        owner: str,
        repo: str,
        branch: str,
        files: Dict[str, str],
        message: str,
    ) -> str:
        digest = hashlib.sha1()
        digest.update(f"{owner}/{repo}@{branch}:{len(self.commits)}".encode())
        for path in sorted(files):
            digest.update(path.encode())
            digest.update(files[path].encode())
        ref = digest.hexdigest()
        self.commits.append(
            RecordedCommit(
                ref=ref,
                owner=owner,
                repo=repo,
                branch=branch,
                message=message,
                files=dict(files),
            )
        )
        return ref
