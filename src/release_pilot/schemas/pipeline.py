"""Per-run pipeline state shared between stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from release_pilot.schemas.payload import RefInfo


@dataclass(frozen=True)
class ReleaseCommit:
    """Commit and tag produced by the package stage."""

    sha: str
    name: str

    @property
    def padded_sha(self) -> str:
        """Sha left-padded with zeros to the 40 characters the host expects."""
        return self.sha.strip().rjust(40, "0")


@dataclass(frozen=True)
class ReleaseArtifact:
    """A file uploaded to the host release."""

    path: Path
    name: str


@dataclass
class PipelineContext:
    """Mutable state for one release run, owned by the engine."""

    is_pull_request: bool = False
    payload: dict[str, Any] | None = None

    # Workspace
    git_parent_path: Path | None = None
    git_local_path: Path | None = None
    git_local_branch: str | None = None
    git_remote: str | None = None

    # Validated payload sections
    base_info: RefInfo | None = None
    head_info: RefInfo | None = None

    # Release output
    release_version: str | None = None
    release_commit: ReleaseCommit | None = None
    release_artifacts: list[ReleaseArtifact] = field(default_factory=list)

    @property
    def pull_request_number(self) -> int | None:
        if not self.is_pull_request or not self.payload:
            return None
        number = self.payload.get("number")
        return int(number) if number is not None else None

    def require_workspace(self) -> Path:
        """Return the checked-out working copy path."""
        if self.git_local_path is None:
            raise RuntimeError("Workspace has not been prepared")
        return self.git_local_path
