"""Record workflow artifacts and export them to version control."""

from __future__ import annotations

import logging
import posixpath
from collections import Counter
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..constants import DEFAULT_ARTIFACT_ROOT
from ..contracts import (
    Artifact,
    ArtifactType,
    CommitResult,
    RepositoryTarget,
    WorkflowInstance,
)
from ..exceptions import ArtifactExportError
from ..vcs import VersionControl

CODE_EXTENSIONS = {".py", ".js", ".ts", ".tsx", ".jsx", ".go", ".rs", ".java", ".rb", ".sql", ".sh"}
CONFIG_EXTENSIONS = {".yaml", ".yml", ".json", ".toml", ".ini", ".cfg", ".env"}

# (substring, label) pairs used for commit messages; first match wins.
ARTIFACT_KINDS = [
    ("prd", "PRD"),
    ("architecture", "Architecture"),
    ("story", "User Stories"),
    ("brief", "Project Brief"),
    ("analysis", "Analysis"),
]


class ArtifactStats(BaseModel):
    count: int = 0
    total_size: int = 0
    average_size: float = 0.0
    by_extension: Dict[str, int] = Field(default_factory=dict)


def artifact_kind(name: str) -> str:
    lowered = name.lower()
    for needle, label in ARTIFACT_KINDS:
        if needle in lowered:
            return label
    return "Documentation"


class ArtifactManager:
    """Keep artifacts on the instance and commit them in one go."""

    def __init__(
        self,
        vcs: Optional[VersionControl] = None,
        root: str = DEFAULT_ARTIFACT_ROOT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.vcs = vcs
        self.root = root.strip("/") or DEFAULT_ARTIFACT_ROOT
        self._log = logger or logging.getLogger(__name__)

    def path_for(self, artifact: Artifact | str) -> str:
        """Return the repository path an artifact is written to."""
        name = artifact if isinstance(artifact, str) else artifact.name
        filename = name if posixpath.splitext(name)[1] else f"{name}.md"
        lowered = filename.lower()
        if any(key in lowered for key in ("prd", "requirements", "brief")):
            folder = self.root
        elif "architecture" in lowered:
            folder = f"{self.root}/architecture"
        elif "story" in lowered or "epic" in lowered:
            folder = f"{self.root}/stories"
        else:
            folder = f"{self.root}/artifacts"
        return f"{folder}/{filename}"

    def classify(self, name: str) -> ArtifactType:
        lowered = name.lower()
        ext = posixpath.splitext(lowered)[1]
        if "test" in lowered or ".spec." in lowered:
            return ArtifactType.TEST
        if ext in CODE_EXTENSIONS:
            return ArtifactType.CODE
        if ext in CONFIG_EXTENSIONS:
            return ArtifactType.CONFIGURATION
        if "report" in lowered:
            return ArtifactType.REPORT
        if "analysis" in lowered:
            return ArtifactType.ANALYSIS
        return ArtifactType.DOCUMENT

    def record(
        self,
        instance: WorkflowInstance,
        name: str,
        content: str,
        created_by: str,
        *,
        step_index: Optional[int] = None,
        type: Optional[ArtifactType] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Artifact:
        """Store an artifact on ``instance``, replacing one with the same name."""
        artifact = Artifact(
            name=name,
            type=type or self.classify(name),
            content=content,
            created_by=created_by,
            step_index=step_index,
            metadata=dict(metadata or {}),
        )
        instance.context.artifacts[name] = artifact
        self._log.info(
            f"Artifact '{name}' recorded for workflow {instance.id} by {created_by} "
            f"({len(content)} chars)"
        )
        return artifact

    def commit_message(self, instance: WorkflowInstance) -> str:
        artifacts = list(instance.context.artifacts.values())
        agents = list(dict.fromkeys(a.created_by for a in artifacts))
        kinds = list(dict.fromkeys(artifact_kind(a.name) for a in artifacts))
        return (
            f"Add workflow artifacts for {instance.name}\n\n"
            f"Generated by: {', '.join(agents)}\n"
            f"Artifacts: {', '.join(kinds)}\n"
            f"Files: {len(artifacts)}\n"
            f"Workflow: {instance.id}"
        )

    async def export(
        self,
        instance: WorkflowInstance,
        target: Optional[RepositoryTarget] = None,
        message: Optional[str] = None,
    ) -> CommitResult:
        """Commit every artifact of ``instance`` as a single commit.

        Raises:
            ArtifactExportError: No version control or target is configured,
                or the commit failed.
        """
        artifacts = list(instance.context.artifacts.values())
        if not artifacts:
            self._log.info(f"No artifacts to export for workflow {instance.id}")
            return CommitResult(committed=0)

        target = target or instance.repository
        if self.vcs is None or target is None:
            raise ArtifactExportError(
                f"No version control target configured for workflow {instance.id}"
            )

        files = {self.path_for(a): a.content for a in artifacts}
        try:
            ref = await self.vcs.commit(
                target.owner,
                target.repo,
                target.branch,
                files,
                message or self.commit_message(instance),
            )
        except ArtifactExportError:
            raise
        except Exception as e:
            raise ArtifactExportError(f"Failed to commit artifacts: {e}") from e

        self._log.info(
            f"Exported {len(files)} artifacts of workflow {instance.id} to "
            f"{target.owner}/{target.repo}@{target.branch} ({ref})"
        )
        return CommitResult(
            committed=len(files), commit_ref=ref, branch=target.branch, paths=sorted(files)
        )

    def stats(self, instance: WorkflowInstance) -> ArtifactStats:
        artifacts = list(instance.context.artifacts.values())
        if not artifacts:
            return ArtifactStats()
        sizes = [len(a.content) for a in artifacts]
        extensions = Counter(
            posixpath.splitext(a.name)[1].lstrip(".").lower() or "md" for a in artifacts
        )
        return ArtifactStats(
            count=len(artifacts),
            total_size=sum(sizes),
            average_size=sum(sizes) / len(artifacts),
            by_extension=dict(extensions),
        )
