from release_pilot.sources.base import SourceAdapter, SourceRegistry
from release_pilot.sources.github import GitHubSource

__all__ = [
    "GitHubSource",
    "SourceAdapter",
    "SourceRegistry",
]
