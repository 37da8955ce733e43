"""GitHub API client for pull request, status and release operations.

Uses GitHub REST API v3 to:
- Fetch pull requests and check collaborator permissions
- Comment on pull requests
- Create commit statuses
- Create releases and upload release assets

Reference: https://docs.github.com/en/rest
"""

import logging
import re
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

# Maximum length GitHub accepts for a commit status description
STATUS_DESCRIPTION_LIMIT = 140


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubRateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded."""

    pass


class GitHubNotFoundError(GitHubAPIError):
    """Raised when requested resource is not found."""

    pass


class GitHubClient:
    """
    GitHub API client used by the GitHub source adapter.

    Handles authentication, rate limiting, and error responses.
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize GitHub client.

        Args:
            token: GitHub personal access token
            base_url: GitHub API base URL (default: https://api.github.com)
            transport: Optional httpx transport (used by tests)
        """
        self.token = token
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self._transport = transport
        self._client: httpx.Client | None = None

    def __enter__(self) -> "GitHubClient":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def open(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers=self._build_headers(),
                timeout=httpx.Timeout(30.0, connect=10.0),
                transport=self._transport,
            )

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def _build_headers(self) -> dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an API request with error handling.

        Raises:
            GitHubRateLimitError: If rate limit exceeded
            GitHubNotFoundError: If resource not found
            GitHubAPIError: For other API errors
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Call open() or use 'with' context.")

        response = self._client.request(method, path, **kwargs)

        # Handle rate limiting
        if response.status_code == 403:
            remaining = response.headers.get("X-RateLimit-Remaining", "")
            if remaining == "0":
                reset_time = response.headers.get("X-RateLimit-Reset", "unknown")
                raise GitHubRateLimitError(
                    f"GitHub API rate limit exceeded. Resets at {reset_time}",
                    status_code=403,
                )

        if response.status_code == 404:
            raise GitHubNotFoundError(
                f"Resource not found: {path}",
                status_code=404,
            )

        if response.status_code >= 400:
            raise GitHubAPIError(
                f"GitHub API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        return response

    def get_pull_request(self, repo: str, number: int) -> dict[str, Any]:
        """
        Get a pull request.

        Args:
            repo: Repository in "owner/repo" format
            number: Pull request number

        Returns:
            Pull request data from GitHub API
        """
        logger.debug(f"Fetching pull request #{number} from {repo}")
        response = self._request("GET", f"/repos/{repo}/pulls/{number}")
        return response.json()

    def is_collaborator(self, repo: str, login: str) -> bool:
        """Check whether a user is a collaborator on the repository."""
        try:
            response = self._request("GET", f"/repos/{repo}/collaborators/{login}")
        except GitHubNotFoundError:
            return False
        return response.status_code == 204

    def add_comment(self, repo: str, number: int, body: str) -> dict[str, Any]:
        """Post a comment on a pull request (issue comments API)."""
        logger.info(f"Commenting on pull request #{number} in {repo}")
        response = self._request(
            "POST",
            f"/repos/{repo}/issues/{number}/comments",
            json={"body": body},
        )
        return response.json()

    def create_status(
        self,
        repo: str,
        sha: str,
        state: str,
        *,
        target_url: str,
        description: str,
        context: str,
    ) -> dict[str, Any]:
        """
        Create a commit status.

        Args:
            repo: Repository in "owner/repo" format
            sha: Commit SHA
            state: One of pending, success, failure, error
            target_url: Link shown next to the status
            description: Short human description (truncated to the API limit)
            context: Status context label
        """
        logger.info(
            "Creating commit status",
            extra={"repo": repo, "sha": sha[:8], "state": state},
        )
        response = self._request(
            "POST",
            f"/repos/{repo}/statuses/{sha}",
            json={
                "state": state,
                "target_url": target_url,
                "description": description[:STATUS_DESCRIPTION_LIMIT],
                "context": context,
            },
        )
        return response.json()

    def create_release(
        self,
        repo: str,
        tag_name: str,
        *,
        target_commitish: str,
        name: str,
        body: str,
    ) -> dict[str, Any]:
        """Create a release for an existing tag."""
        logger.info(f"Creating release {tag_name} in {repo}")
        response = self._request(
            "POST",
            f"/repos/{repo}/releases",
            json={
                "tag_name": tag_name,
                "target_commitish": target_commitish,
                "name": name,
                "body": body,
            },
        )
        return response.json()

    def upload_asset(self, release: dict[str, Any], path: Path, name: str) -> dict[str, Any]:
        """
        Upload a file to a release.

        The upload endpoint lives on a separate host and is given by the
        release's ``upload_url`` URI template.
        """
        upload_url = re.sub(r"\{.*\}$", "", str(release.get("upload_url", "")))
        if not upload_url:
            raise GitHubAPIError("Release response is missing upload_url")

        logger.info(f"Uploading release asset {name}")
        response = self._request(
            "POST",
            upload_url,
            params={"name": name},
            content=Path(path).read_bytes(),
            headers={"Content-Type": "application/octet-stream"},
        )
        return response.json()
