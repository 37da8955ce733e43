from release_pilot.workspace.repo_manager import (
    CommitEntry,
    GitError,
    RepoManager,
    embed_credentials,
    generate_changelog,
)

__all__ = [
    "CommitEntry",
    "GitError",
    "RepoManager",
    "embed_credentials",
    "generate_changelog",
]
