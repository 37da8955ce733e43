"""Runner adapters: turn CI signals into a trigger payload.

The configuration resolver has already normalized vendor variables into the
``runner_*`` fields; a runner only decides how to read the pull request
identifier.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from release_pilot.config import Configuration
from release_pilot.errors import SourcePayloadFormatError
from release_pilot.schemas.payload import build_push_payload
from release_pilot.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class BaseRunner(ABC):
    """Base class for CI runners."""

    name: str

    @abstractmethod
    def parse_pull_request_number(self, identifier: str) -> int:
        """Extract the pull request number from the CI identifier.

        Raises:
            SourcePayloadFormatError: If the identifier is not a number
        """
        ...

    def retrieve_payload(
        self, config: Configuration, source: SourceAdapter
    ) -> tuple[dict[str, Any], bool]:
        """
        Build the trigger payload for this run.

        Returns:
            Tuple of (payload, is_pull_request)
        """
        identifier = config.runner_pull_request.strip()
        if not identifier:
            logger.info(
                "No pull request detected, using push payload",
                extra={"sha": config.runner_sha, "branch": config.runner_branch},
            )
            payload = build_push_payload(
                sha=config.runner_sha,
                ref=config.runner_branch,
                clone_url=config.runner_clone_url,
                name=config.runner_repo_name,
                full_name=config.runner_repo_full_name,
            )
            return payload, False

        number = self.parse_pull_request_number(identifier)
        logger.info(f"Retrieving pull request #{number}")
        return source.fetch_pull_request(number), True


def parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise SourcePayloadFormatError(f"Pull request identifier is not a number: {value!r}")


class RunnerRegistry:
    """Registry for runner implementations."""

    _runners: dict[str, type[BaseRunner]] = {}

    @classmethod
    def register(cls, name: str):
        """Decorator to register a runner class."""

        def decorator(runner_class: type[BaseRunner]):
            runner_class.name = name
            cls._runners[name] = runner_class
            logger.debug(f"Registered runner: {name}")
            return runner_class

        return decorator

    @classmethod
    def create(cls, config: Configuration) -> BaseRunner:
        runner_class = cls._runners.get(config.runner)
        if runner_class is None:
            raise ValueError(f"Unknown runner: {config.runner!r}. Available: {cls.list_registered()}")
        return runner_class()

    @classmethod
    def list_registered(cls) -> list[str]:
        return list(cls._runners.keys())
