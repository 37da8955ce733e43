"""Source adapter abstraction layer.

A source adapter talks to the source-control host:
- Authenticating and preparing the workspace
- Validating and authorizing trigger payloads
- Reporting commit statuses
- Publishing the release

Each adapter inherits from SourceAdapter and registers with the
SourceRegistry.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from typing import Any

from release_pilot.config import Configuration
from release_pilot.errors import SourceUnspecifiedError
from release_pilot.schemas.pipeline import PipelineContext

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """Abstract base class for source-control hosts.

    Each adapter must implement:
    - configure(): authenticate and allocate the workspace parent
    - process_push_payload() / process_pull_request_payload(): check out code
    - fetch_pull_request(): authoritative pull request payload for runners
    - release(): push, tag and publish
    - process_failure(): report the failure back to the host
    """

    name: str

    def __init__(self, config: Configuration):
        self.config = config

    def reconfigure(self, config: Configuration) -> None:
        """Swap in a re-resolved configuration snapshot."""
        self.config = config

    @abstractmethod
    def configure(self, ctx: PipelineContext) -> None: ...

    @abstractmethod
    def fetch_pull_request(self, number: int) -> dict[str, Any]: ...

    @abstractmethod
    def process_push_payload(self, ctx: PipelineContext, payload: dict[str, Any]) -> None: ...

    @abstractmethod
    def process_pull_request_payload(self, ctx: PipelineContext, payload: dict[str, Any]) -> None: ...

    @abstractmethod
    def release(self, ctx: PipelineContext) -> None: ...

    @abstractmethod
    def process_failure(self, ctx: PipelineContext, exc: BaseException) -> None: ...

    def close(self) -> None:
        """Release host connections."""
        return None

    def complete_dry_run(self, ctx: PipelineContext) -> None:
        """Finish a run that skipped publishing."""
        self.remove_workspace(ctx)

    def remove_workspace(self, ctx: PipelineContext) -> None:
        """Delete the workspace parent directory if it still exists."""
        parent = ctx.git_parent_path
        if parent is not None and parent.exists():
            shutil.rmtree(parent)
            logger.info("Removed workspace", extra={"path": str(parent)})


class SourceRegistry:
    """Registry for source adapter implementations."""

    _sources: dict[str, type[SourceAdapter]] = {}

    @classmethod
    def register(cls, name: str):
        """Decorator to register a source adapter class."""

        def decorator(source_class: type[SourceAdapter]):
            source_class.name = name
            cls._sources[name] = source_class
            logger.debug(f"Registered source adapter: {name}")
            return source_class

        return decorator

    @classmethod
    def create(cls, config: Configuration) -> SourceAdapter:
        """Instantiate the adapter selected by ``config.source``.

        Raises:
            SourceUnspecifiedError: If no adapter is registered under that name
        """
        source_class = cls._sources.get(config.source)
        if source_class is None:
            raise SourceUnspecifiedError(
                f"Unknown source: {config.source!r}. Available: {cls.list_registered()}"
            )
        return source_class(config)

    @classmethod
    def list_registered(cls) -> list[str]:
        return list(cls._sources.keys())
