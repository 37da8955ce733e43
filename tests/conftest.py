"""Test configuration and fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from release_pilot.config import Configuration, resolve
from release_pilot.schemas.pipeline import ReleaseCommit
from release_pilot.services.github_client import GitHubNotFoundError
from release_pilot.sources.github import GitHubSource
from release_pilot.workspace.repo_manager import CommitEntry

REPO = "acme/widgets"
HEAD_SHA = "b" * 40
BASE_SHA = "a" * 40


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep the developer's home directory and CI variables out of tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in (
        "CIRCLECI",
        "CI_PULL_REQUEST",
        "CIRCLE_SHA1",
        "CIRCLE_BRANCH",
        "CIRCLE_PROJECT_USERNAME",
        "CIRCLE_PROJECT_REPONAME",
    ):
        monkeypatch.delenv(name, raising=False)

    for name in list(os.environ):
        if name.upper().startswith("RELEASE_PILOT_"):
            monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Configuration]:
    """Build a configuration from explicit options only."""

    def _make(**options: Any) -> Configuration:
        options.setdefault("source_github_access_token", "t0ken")
        options.setdefault("source_git_parent_path", tmp_path / "workspaces")
        options.setdefault("source_release_delay_seconds", 0)
        return resolve(options, config_files=[])

    return _make


class FakeGitHubClient:
    """In-memory stand-in for GitHubClient."""

    def __init__(self, token: str, base_url: str | None = None):
        self.token = token
        self.base_url = base_url
        self.opened = False
        self.closed = False
        self.collaborators: set[str] = {"octocat"}
        self.pull_requests: dict[int, dict[str, Any]] = {}
        self.comments: list[tuple[str, int, str]] = []
        self.statuses: list[dict[str, Any]] = []
        self.releases: list[dict[str, Any]] = []
        self.assets: list[tuple[str, str]] = []

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def get_pull_request(self, repo: str, number: int) -> dict[str, Any]:
        if number not in self.pull_requests:
            raise GitHubNotFoundError(f"Resource not found: /repos/{repo}/pulls/{number}", 404)
        return self.pull_requests[number]

    def is_collaborator(self, repo: str, login: str) -> bool:
        return login in self.collaborators

    def add_comment(self, repo: str, number: int, body: str) -> dict[str, Any]:
        self.comments.append((repo, number, body))
        return {"id": len(self.comments)}

    def create_status(self, repo: str, sha: str, state: str, **kwargs: Any) -> dict[str, Any]:
        self.statuses.append({"repo": repo, "sha": sha, "state": state, **kwargs})
        return {"state": state}

    def create_release(self, repo: str, tag_name: str, **kwargs: Any) -> dict[str, Any]:
        release = {
            "repo": repo,
            "tag_name": tag_name,
            "upload_url": "https://uploads.github.com/repos/acme/widgets/releases/1/assets{?name,label}",
            **kwargs,
        }
        self.releases.append(release)
        return release

    def upload_asset(self, release: dict[str, Any], path: Path, name: str) -> dict[str, Any]:
        self.assets.append((release["tag_name"], name))
        return {"name": name}


class FakeRepoManager:
    """Records git operations; clone creates the working copy directory."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def clone(self, parent_path: Path, repo_name: str, remote: str) -> Path:
        self.calls.append(("clone", repo_name, remote))
        path = Path(parent_path) / repo_name
        path.mkdir(parents=True)
        return path

    def fetch(self, repo_path: Path, remote_ref: str, local_branch: str) -> None:
        self.calls.append(("fetch", remote_ref, local_branch))

    def checkout(self, repo_path: Path, ref: str) -> None:
        self.calls.append(("checkout", ref))

    def commit(self, repo_path: Path, message: str) -> str | None:
        self.calls.append(("commit", message))
        return "c" * 40

    def tag(self, repo_path: Path, name: str) -> ReleaseCommit:
        self.calls.append(("tag", name))
        return ReleaseCommit(sha="c" * 40, name=name)

    def latest_tag_commit(self, repo_path: Path) -> ReleaseCommit:
        self.calls.append(("latest_tag_commit",))
        return ReleaseCommit(sha="d" * 40, name="v1.0.1")

    def push(self, repo_path: Path, local_branch: str, remote_branch: str) -> None:
        self.calls.append(("push", local_branch, remote_branch))

    def log_between(self, repo_path: Path, base_sha: str, head_sha: str) -> list[CommitEntry]:
        self.calls.append(("log_between", base_sha, head_sha))
        return [
            CommitEntry(
                sha=HEAD_SHA,
                author_name="Octo Cat",
                date="2026-10-01 12:00:00+0000",
                message="Add widgets | gadgets",
            )
        ]

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_repo_manager() -> FakeRepoManager:
    return FakeRepoManager()


@pytest.fixture
def github_client() -> FakeGitHubClient:
    return FakeGitHubClient("t0ken")


@pytest.fixture
def pull_request_payload() -> dict[str, Any]:
    """Pull request payload as returned by GET /repos/{repo}/pulls/{number}."""
    return {
        "number": 7,
        "state": "open",
        "user": {"login": "octocat"},
        "base": {
            "sha": BASE_SHA,
            "ref": "main",
            "repo": {
                "clone_url": f"https://github.com/{REPO}.git",
                "name": "widgets",
                "full_name": REPO,
                "default_branch": "main",
            },
        },
        "head": {
            "sha": HEAD_SHA,
            "ref": "feature/gadgets",
            "repo": {
                "clone_url": "https://github.com/octocat/widgets.git",
                "name": "widgets",
                "full_name": "octocat/widgets",
            },
        },
    }


@pytest.fixture
def push_payload() -> dict[str, Any]:
    return {
        "head": {
            "sha": HEAD_SHA,
            "ref": "main",
            "repo": {
                "clone_url": f"https://github.com/{REPO}.git",
                "name": "widgets",
                "full_name": REPO,
            },
        }
    }


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_source(
    make_config: Callable[..., Configuration],
    github_client: FakeGitHubClient,
    fake_repo_manager: FakeRepoManager,
    sleeps: list[float],
) -> Callable[..., GitHubSource]:
    """Build a GitHubSource wired to the fake client and repo manager."""

    def _make(**options: Any) -> GitHubSource:
        return GitHubSource(
            make_config(**options),
            client_factory=lambda token, base_url=None: github_client,
            repo_manager=fake_repo_manager,
            sleep=sleeps.append,
        )

    return _make
