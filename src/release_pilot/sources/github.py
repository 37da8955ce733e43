"""GitHub source adapter.

Validates and authorizes pull request payloads, prepares the working copy,
reports commit statuses and publishes GitHub releases.
"""

import logging
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from release_pilot.config import Configuration
from release_pilot.errors import (
    SourceAuthenticationFailed,
    SourcePayloadFormatError,
    SourcePayloadUnsupported,
    SourceUnauthorizedUser,
)
from release_pilot.schemas.payload import RefInfo, validate_ref_payload
from release_pilot.schemas.pipeline import PipelineContext
from release_pilot.services.github_client import GitHubClient
from release_pilot.sources.base import SourceAdapter, SourceRegistry
from release_pilot.workspace.repo_manager import RepoManager, embed_credentials, generate_changelog

logger = logging.getLogger(__name__)

# Failure descriptions are cut short of the API limit
FAILURE_DESCRIPTION_LENGTH = 135

FINAL_STATES = ("success", "failure")

UNAUTHORIZED_COMMENT = (
    "@{login} is not an owner or collaborator of {repo}, so this pull request "
    "cannot be released automatically.\n\n"
    "A maintainer can release it once it has been reviewed."
)


@SourceRegistry.register("github")
class GitHubSource(SourceAdapter):
    """Source adapter for GitHub and GitHub Enterprise."""

    def __init__(
        self,
        config: Configuration,
        client_factory: Callable[..., GitHubClient] = GitHubClient,
        repo_manager: RepoManager | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(config)
        self._client_factory = client_factory
        self.repo_manager = repo_manager or RepoManager(
            author_name=config.engine_git_author_name,
            author_email=config.engine_git_author_email,
        )
        self._sleep = sleep
        self.client: GitHubClient | None = None
        self._final_state: str | None = None

    def _require_client(self) -> GitHubClient:
        if self.client is None:
            raise RuntimeError("Source has not been configured")
        return self.client

    def configure(self, ctx: PipelineContext) -> None:
        token = self.config.source_github_access_token
        if not token:
            raise SourceAuthenticationFailed("Missing source_github_access_token")

        self.client = self._client_factory(token, base_url=self.config.source_github_api_endpoint)
        self.client.open()

        parent_root = self.config.source_git_parent_path
        if parent_root is not None:
            parent_root = Path(parent_root).expanduser()
            parent_root.mkdir(parents=True, exist_ok=True)
        ctx.git_parent_path = Path(tempfile.mkdtemp(prefix="release-pilot-", dir=parent_root))
        ctx.release_commit = None
        ctx.release_artifacts = []
        self._final_state = None

        logger.info("GitHub source configured", extra={"parent_path": str(ctx.git_parent_path)})

    def fetch_pull_request(self, number: int) -> dict[str, Any]:
        repo = self.config.runner_repo_full_name
        if not repo:
            raise SourcePayloadFormatError(
                "runner_repo_full_name is required to retrieve a pull request"
            )
        return self._require_client().get_pull_request(repo, number)

    def process_push_payload(self, ctx: PipelineContext, payload: dict[str, Any]) -> None:
        """Clone the pushed repository and check out the pushed ref."""
        head = validate_ref_payload(payload.get("head"), "head")

        remote = embed_credentials(head.repo.clone_url, self.config.source_github_access_token)
        path = self.repo_manager.clone(ctx.git_parent_path, head.repo.name, remote)
        self.repo_manager.checkout(path, head.ref)

        ctx.git_remote = remote
        ctx.git_local_path = path
        ctx.git_local_branch = head.ref
        ctx.head_info = head

    def process_pull_request_payload(self, ctx: PipelineContext, payload: dict[str, Any]) -> None:
        """
        Check that a pull request may be released and check out its merge ref.

        Checks, in order: the pull request is open, targets the default branch,
        was opened by a collaborator, and is well formed.

        Raises:
            SourcePayloadUnsupported: If the pull request is closed, targets
                another branch or comes from an unexpected repository
            SourceUnauthorizedUser: If the opener is not a collaborator
            SourcePayloadFormatError: If required payload keys are missing
        """
        if payload.get("state") != "open":
            raise SourcePayloadUnsupported(
                f"Pull request has an invalid state: {payload.get('state')!r}"
            )

        raw_base = payload.get("base") if isinstance(payload.get("base"), dict) else {}
        base_repo = raw_base.get("repo") if isinstance(raw_base.get("repo"), dict) else {}
        if raw_base.get("ref") != base_repo.get("default_branch"):
            raise SourcePayloadUnsupported(
                "Pull request must be merged into the repository default branch"
            )

        self._authorize(payload, base_repo.get("full_name"))

        base = validate_ref_payload(payload.get("base"), "base")
        head = validate_ref_payload(payload.get("head"), "head")

        canonical = self.config.runner_repo_full_name
        if canonical and base.repo.full_name != canonical:
            raise SourcePayloadUnsupported(
                f"Pull request targets {base.repo.full_name}, expected {canonical}"
            )

        number = payload.get("number")
        local_branch = f"pr_{number}"
        remote = embed_credentials(base.repo.clone_url, self.config.source_github_access_token)
        path = self.repo_manager.clone(ctx.git_parent_path, base.repo.name, remote)
        self.repo_manager.fetch(path, f"refs/pull/{number}/merge", local_branch)
        self.repo_manager.checkout(path, local_branch)

        ctx.git_remote = remote
        ctx.git_local_path = path
        ctx.git_local_branch = local_branch
        ctx.base_info = base
        ctx.head_info = head

        self._set_status(
            base,
            head.sha,
            "pending",
            "Started processing package. Pull request will be merged automatically when complete.",
        )

    def _authorize(self, payload: dict[str, Any], repo: str | None) -> None:
        login = (payload.get("user") or {}).get("login") or ""
        client = self._require_client()
        if login and repo and client.is_collaborator(repo, login):
            return

        logger.warning(
            "Pull request opened by non-collaborator",
            extra={"login": login, "repo": repo},
        )
        if repo and payload.get("number") is not None:
            client.add_comment(
                repo,
                int(payload["number"]),
                UNAUTHORIZED_COMMENT.format(login=login or "unknown user", repo=repo),
            )
        raise SourceUnauthorizedUser(f"{login or 'unknown user'} is not a collaborator of {repo}")

    def release(self, ctx: PipelineContext) -> None:
        """Push the release, create the GitHub release and upload artifacts."""
        base = ctx.base_info
        commit = ctx.release_commit
        if base is None or commit is None or ctx.head_info is None:
            raise RuntimeError("Release requires a processed pull request and release commit")

        path = ctx.require_workspace()
        self.repo_manager.push(path, ctx.git_local_branch, base.ref)

        # Give the host time to register the pushed tag before releasing it
        self._sleep(self.config.source_release_delay_seconds)

        sha = commit.padded_sha
        commits = self.repo_manager.log_between(path, base.sha, ctx.head_info.sha)
        changelog = generate_changelog(
            commits, base.repo.full_name or "", self.config.source_github_web_endpoint
        )

        client = self._require_client()
        release = client.create_release(
            base.repo.full_name,
            commit.name,
            target_commitish=sha,
            name=commit.name,
            body=changelog,
        )
        for artifact in ctx.release_artifacts:
            client.upload_asset(release, artifact.path, artifact.name)

        self._set_status(
            base,
            ctx.head_info.sha,
            "success",
            "Pull request was successfully merged and new release created.",
        )
        self.remove_workspace(ctx)

    def complete_dry_run(self, ctx: PipelineContext) -> None:
        """Resolve the pending status of a dry run and remove the workspace."""
        if ctx.base_info is not None and ctx.head_info is not None:
            self._set_status(
                ctx.base_info,
                ctx.head_info.sha,
                "success",
                "Dry run completed. Nothing was pushed or published.",
            )
        self.remove_workspace(ctx)

    def process_failure(self, ctx: PipelineContext, exc: BaseException) -> None:
        """Remove the workspace and mark the head commit as failed."""
        self.remove_workspace(ctx)

        head = ctx.head_info
        if head is None or self.client is None:
            return
        if self._final_state is not None:
            logger.warning(
                "Commit status already final, not reporting failure",
                extra={"state": self._final_state, "error": str(exc)},
            )
            return

        status_ref = ctx.base_info or head
        self._set_status(status_ref, head.sha, "failure", str(exc)[:FAILURE_DESCRIPTION_LENGTH])

    def _set_status(self, ref: RefInfo, sha: str, state: str, description: str) -> None:
        repo = ref.repo.full_name or self.config.runner_repo_full_name
        self._require_client().create_status(
            repo,
            sha,
            state,
            target_url=self.config.source_status_target_url,
            description=description,
            context=self.config.source_status_context,
        )
        if state in FINAL_STATES:
            self._final_state = state

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
