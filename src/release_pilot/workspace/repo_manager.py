"""Repository manager for the release workspace.

Handles the git operations the source adapter and package strategies need:
clone, fetch, checkout, commit, tag, push and changelog generation.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from release_pilot.schemas.pipeline import ReleaseCommit

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


class GitError(Exception):
    """Error during git operations."""

    pass


@dataclass(frozen=True)
class CommitEntry:
    """One commit from ``git log``."""

    sha: str
    author_name: str
    date: str
    message: str


def embed_credentials(clone_url: str, token: str) -> str:
    """Return ``clone_url`` with ``token`` embedded as the URL user."""
    parts = urlsplit(clone_url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"{token}@{host}", parts.path, parts.query, parts.fragment))


class RepoManager:
    """
    Runs git commands against the release workspace.

    Operations:
    - Clone repository into the workspace parent directory
    - Fetch pull request refs into local branches
    - Commit, tag and push release changes
    - Render a markdown changelog between two commits
    """

    def __init__(
        self,
        author_name: str = "release-pilot",
        author_email: str = "release-pilot@users.noreply.github.com",
        timeout: int = 300,
    ):
        self.author_name = author_name
        self.author_email = author_email
        self.timeout = timeout

    def _git(self, args: list[str], cwd: Path | None = None) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitError(f"git {args[0]} timed out")

        if result.returncode != 0:
            raise GitError(f"git {args[0]} failed: {result.stderr.strip()}")
        return result.stdout

    def clone(self, parent_path: Path, repo_name: str, remote: str) -> Path:
        """
        Clone a repository into ``parent_path/repo_name``.

        Args:
            parent_path: Workspace parent directory
            repo_name: Directory name for the working copy
            remote: Remote URL (may contain embedded credentials)

        Returns:
            Path to the working copy
        """
        repo_path = (Path(parent_path) / repo_name).resolve()
        if repo_path.exists():
            raise GitError(f"Repository path already exists: {repo_path}")

        logger.info("Cloning repository", extra={"path": str(repo_path)})
        self._git(["clone", remote, str(repo_path)])
        self._git(["config", "user.name", self.author_name], cwd=repo_path)
        self._git(["config", "user.email", self.author_email], cwd=repo_path)
        return repo_path

    def fetch(self, repo_path: Path, remote_ref: str, local_branch: str) -> None:
        """Fetch ``remote_ref`` from origin into ``local_branch``."""
        self._git(["fetch", "origin", f"{remote_ref}:{local_branch}"], cwd=repo_path)

    def checkout(self, repo_path: Path, ref: str) -> None:
        self._git(["checkout", ref], cwd=repo_path)

    def commit(self, repo_path: Path, message: str) -> str | None:
        """
        Stage all changes and commit them.

        Returns:
            New commit SHA, or None when there was nothing to commit
        """
        self._git(["add", "-A"], cwd=repo_path)
        status = self._git(["status", "--porcelain"], cwd=repo_path)
        if not status.strip():
            logger.info("No changes to commit")
            return None

        self._git(["commit", "-m", message], cwd=repo_path)
        return self.head_sha(repo_path)

    def tag(self, repo_path: Path, name: str) -> ReleaseCommit:
        """Create an annotated tag on HEAD and return it as the release commit."""
        self._git(["tag", "-a", name, "-m", f"Release {name}"], cwd=repo_path)
        return ReleaseCommit(sha=self.head_sha(repo_path), name=name)

    def latest_tag_commit(self, repo_path: Path) -> ReleaseCommit:
        """Return the most recent tag reachable from HEAD."""
        name = self._git(["describe", "--tags", "--abbrev=0"], cwd=repo_path).strip()
        sha = self._git(["rev-list", "-n", "1", name], cwd=repo_path).strip()
        return ReleaseCommit(sha=sha, name=name)

    def head_sha(self, repo_path: Path) -> str:
        return self._git(["rev-parse", "HEAD"], cwd=repo_path).strip()

    def push(self, repo_path: Path, local_branch: str, remote_branch: str) -> None:
        """Push ``local_branch`` (and tags) to ``remote_branch`` on origin."""
        logger.info(f"Pushing {local_branch} to origin/{remote_branch}")
        self._git(
            ["push", "--follow-tags", "origin", f"{local_branch}:{remote_branch}"],
            cwd=repo_path,
        )

    def log_between(self, repo_path: Path, base_sha: str, head_sha: str) -> list[CommitEntry]:
        """List commits reachable from ``head_sha`` but not ``base_sha``."""
        fmt = _FIELD_SEP.join(["%H", "%an", "%ad", "%B"]) + _RECORD_SEP
        output = self._git(
            [
                "log",
                f"--format={fmt}",
                "--date=format:%Y-%m-%d %H:%M:%S%z",
                f"{base_sha}..{head_sha}",
            ],
            cwd=repo_path,
        )

        entries = []
        for record in output.split(_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            sha, author, date, message = record.split(_FIELD_SEP, 3)
            entries.append(CommitEntry(sha=sha, author_name=author, date=date, message=message))
        return entries

    def cleanup(self, path: Path) -> None:
        """Remove a workspace directory."""
        if path.exists():
            shutil.rmtree(path)
            logger.debug(f"Cleaned up workspace: {path}")


def generate_changelog(commits: list[CommitEntry], full_name: str, web_url: str) -> str:
    """
    Render commits as a markdown table for the release body.

    Args:
        commits: Commits between the base and head of the release
        full_name: Repository in "owner/repo" format
        web_url: Host web URL used for commit links
    """
    web_url = web_url.rstrip("/")
    lines = [
        "Timestamp | SHA | Message | Author",
        "------------- | ------------- | ------------- | -------------",
    ]
    for commit in commits:
        first_line = commit.message.strip().splitlines()[0] if commit.message.strip() else ""
        message = first_line.replace("|", "!") or "--"
        link = f"[`{commit.sha[:9]}`]({web_url}/{full_name}/commit/{commit.sha})"
        lines.append(f"{commit.date} | {link} | {message} | {commit.author_name}")
    return "\n".join(lines) + "\n"
