"""Package strategy abstraction layer.

A package strategy knows how to build, test, package and publish one kind of
package (npm module, Python distribution, gem, cookbook). Strategies shell out
to the ecosystem tools and inspect their exit status.
"""

import logging
import os
import subprocess
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import IO

from release_pilot.config import Configuration
from release_pilot.errors import EngineUnspecifiedError, ReleasePilotError, TestRunnerError
from release_pilot.schemas.pipeline import PipelineContext, ReleaseCommit
from release_pilot.workspace.repo_manager import RepoManager

logger = logging.getLogger(__name__)

RELEASE_MESSAGE = "(v{version}) Automated packaging of release by release-pilot"

# Lines of stderr kept for the error message of a failed command
_ERROR_TAIL_LINES = 20


def _drain(stream: IO[str], name: str, sink: list[str]) -> None:
    for line in iter(stream.readline, ""):
        line = line.rstrip("\n")
        sink.append(line)
        logger.info(f"{name} -> {line}")
    stream.close()


def run_command(
    command: str,
    cwd: Path,
    error_cls: type[ReleasePilotError],
    env: dict[str, str] | None = None,
) -> str:
    """
    Run a shell command, streaming its output to the log.

    Args:
        command: Shell command line
        cwd: Working directory
        error_cls: Error raised when the command exits non-zero
        env: Extra environment variables

    Returns:
        Captured stdout

    Raises:
        error_cls: If the command fails
    """
    logger.info(f"Running: {command}", extra={"cwd": str(cwd)})
    process = subprocess.Popen(
        command,
        shell=True,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env={**os.environ, **(env or {})},
    )

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []
    readers = [
        threading.Thread(target=_drain, args=(process.stdout, "stdout", stdout_lines)),
        threading.Thread(target=_drain, args=(process.stderr, "stderr", stderr_lines)),
    ]
    for reader in readers:
        reader.start()

    returncode = process.wait()
    for reader in readers:
        reader.join()

    if returncode != 0:
        tail = "\n".join(stderr_lines[-_ERROR_TAIL_LINES:])
        raise error_cls(f"'{command}' failed with exit code {returncode}. {tail}".strip())
    return "\n".join(stdout_lines)


CommandRunner = Callable[..., str]


class PackageStrategy(ABC):
    """Base class for package strategies.

    Each strategy must implement build(), test(), package() and release().
    package() returns the release commit; the others mutate the workspace.
    """

    package_type: str

    def __init__(
        self,
        repo_manager: RepoManager | None = None,
        run: CommandRunner = run_command,
        home: Path | None = None,
    ):
        self.repo_manager = repo_manager or RepoManager()
        self.run = run
        self.home = home

    @property
    def home_path(self) -> Path:
        """Directory where registry credential files are written."""
        return self.home if self.home is not None else Path.home()

    @abstractmethod
    def build(self, ctx: PipelineContext, config: Configuration) -> None: ...

    @abstractmethod
    def test(self, ctx: PipelineContext, config: Configuration) -> None: ...

    @abstractmethod
    def package(self, ctx: PipelineContext, config: Configuration) -> ReleaseCommit: ...

    @abstractmethod
    def release(self, ctx: PipelineContext, config: Configuration) -> None: ...

    def run_test_command(
        self, ctx: PipelineContext, config: Configuration, default_cmd: str | None
    ) -> None:
        """Run the configured (or default) test command, then lint and coverage."""
        path = ctx.require_workspace()
        if config.engine_disable_test:
            logger.info("Tests disabled, skipping test command")
        else:
            test_cmd = config.engine_cmd_test or default_cmd
            if test_cmd:
                self.run(test_cmd, path, TestRunnerError)

        if config.engine_cmd_lint and not config.engine_disable_lint:
            self.run(config.engine_cmd_lint, path, TestRunnerError)
        if config.engine_cmd_coverage and not config.engine_disable_coverage:
            self.run(config.engine_cmd_coverage, path, TestRunnerError)

    def commit_and_tag(self, ctx: PipelineContext, version: str) -> ReleaseCommit:
        """Commit workspace changes and tag them ``v<version>``."""
        path = ctx.require_workspace()
        self.repo_manager.commit(path, RELEASE_MESSAGE.format(version=version))
        commit = self.repo_manager.tag(path, f"v{version}")
        ctx.release_version = version
        return commit


def ensure_file(path: Path, content: str = "") -> None:
    """Create ``path`` with ``content`` unless it already exists."""
    if not path.exists():
        path.write_text(content, encoding="utf-8")
        logger.info(f"Created missing {path.name}")


def ensure_dir(path: Path) -> None:
    if not path.exists():
        path.mkdir(parents=True)
        logger.info(f"Created missing {path.name}/")


class PackageRegistry:
    """Registry for package strategy implementations."""

    _strategies: dict[str, type[PackageStrategy]] = {}

    @classmethod
    def register(cls, package_type: str):
        """Decorator to register a package strategy class."""

        def decorator(strategy_class: type[PackageStrategy]):
            strategy_class.package_type = package_type
            cls._strategies[package_type] = strategy_class
            logger.debug(f"Registered package strategy: {package_type}")
            return strategy_class

        return decorator

    @classmethod
    def create(cls, config: Configuration) -> PackageStrategy:
        """Instantiate the strategy selected by ``config.package_type``.

        Raises:
            EngineUnspecifiedError: If no strategy is registered for the type
        """
        strategy_class = cls._strategies.get(config.package_type)
        if strategy_class is None:
            raise EngineUnspecifiedError(
                f"Unknown package type: {config.package_type!r}. "
                f"Available: {cls.list_registered()}"
            )
        return strategy_class()

    @classmethod
    def list_registered(cls) -> list[str]:
        return list(cls._strategies.keys())
