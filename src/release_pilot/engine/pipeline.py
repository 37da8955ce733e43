"""Release pipeline engine.

Runs the release stages in a fixed order:

    source_configure
    runner_retrieve_payload
    source_process_pull_request_payload | source_process_push_payload
    (repository configuration and hooks)
    build_step
    test_step
    package_step
    release_step        (pull requests only)
    source_release      (pull requests only)

Each stage is wrapped by ``pre_<stage>``/``post_<stage>`` hooks and may be
replaced by an override. Any failure after the source is configured is
reported through ``source.process_failure`` exactly once and re-raised.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from release_pilot.config import Configuration, ConfigurationResolver
from release_pilot.core.logging import pull_request_ctx, run_id_ctx, stage_ctx
from release_pilot.engine import stages, transform
from release_pilot.engine.versioning import bump_version
from release_pilot.errors import StagePostconditionError
from release_pilot.packages.base import PackageRegistry, PackageStrategy
from release_pilot.runners.base import BaseRunner, RunnerRegistry
from release_pilot.schemas.pipeline import PipelineContext
from release_pilot.sources.base import SourceAdapter, SourceRegistry

logger = logging.getLogger(__name__)

__all__ = ["HookSet", "PipelineEngine", "bump_version", "create_engine"]

StageHook = Callable[["PipelineEngine"], None]

_PAYLOAD_FIELDS = ["git_local_path", "git_local_branch", "head_info"]


class HookSet:
    """Ordered hooks for every ``pre_<stage>``/``post_<stage>`` point."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[StageHook]] = {
            stages.hook_point(prefix, stage): []
            for stage in stages.STAGES
            for prefix in stages.HOOK_PREFIXES
        }

    def add(self, point: str, hook: StageHook) -> None:
        if point not in self._hooks:
            raise KeyError(f"Unknown hook point: {point}")
        self._hooks[point].append(hook)

    def get(self, point: str) -> tuple[StageHook, ...]:
        return tuple(self._hooks[point])

    def points(self) -> list[str]:
        return list(self._hooks)


def _log_hook(message: str) -> StageHook:
    def hook(engine: PipelineEngine) -> None:
        logger.info(message)

    return hook


class PipelineEngine:
    """
    Orchestrates one release run.

    The engine owns the PipelineContext; the source, runner and package
    strategy read and write it through the stage bodies.
    """

    def __init__(
        self,
        config: Configuration,
        source: SourceAdapter,
        runner: BaseRunner,
        package: PackageStrategy,
        resolver: ConfigurationResolver | None = None,
    ):
        self.config = config
        self.source = source
        self.runner = runner
        self.package = package
        self.resolver = resolver

        self.ctx = PipelineContext()
        self.run_id = uuid.uuid4().hex[:12]
        self.hooks = HookSet()
        self.overrides: dict[str, StageHook] = {}

        for stage in stages.STAGES:
            self.hooks.add(stages.hook_point("pre", stage), _log_hook(f"Starting {stage}"))
            self.hooks.add(stages.hook_point("post", stage), _log_hook(f"Finished {stage}"))

        self._started = False
        self._source_configured = False
        self._failure_reported = False

    def start(self) -> PipelineContext:
        """Run the pipeline once.

        Raises:
            RuntimeError: If the engine has already been started
            ReleasePilotError: Any pipeline failure, after it was reported
        """
        if self._started:
            raise RuntimeError("Pipeline engine can only be started once")
        self._started = True

        run_token = run_id_ctx.set(self.run_id)
        logger.info(
            "Starting release run",
            extra={
                "source": self.config.source,
                "runner": self.config.runner,
                "package_type": self.config.package_type,
                "dry_run": self.config.dry_run,
            },
        )
        try:
            self._run()
        except Exception as exc:
            logger.error(
                f"Release run failed: {exc}",
                extra={"stage": stage_ctx.get(), "error_type": type(exc).__name__},
            )
            self._report_failure(exc)
            raise
        finally:
            self.source.close()
            stage_ctx.set(None)
            pull_request_ctx.set(None)
            run_id_ctx.reset(run_token)

        logger.info("Release run completed", extra={"release_version": self.ctx.release_version})
        return self.ctx

    def _run(self) -> None:
        self._run_stage(stages.SOURCE_CONFIGURE)
        self._run_stage(stages.RUNNER_RETRIEVE_PAYLOAD)

        if self.ctx.is_pull_request:
            pull_request_ctx.set(self.ctx.pull_request_number)
            self._run_stage(stages.SOURCE_PROCESS_PULL_REQUEST_PAYLOAD)
        else:
            self._run_stage(stages.SOURCE_PROCESS_PUSH_PAYLOAD)

        self._load_repository_config()

        self._run_stage(stages.BUILD_STEP)
        self._run_stage(stages.TEST_STEP)
        self._run_stage(stages.PACKAGE_STEP)

        if not self.ctx.is_pull_request:
            logger.info("Push run complete, no release is published for pushes")
            self.source.remove_workspace(self.ctx)
            return

        if self.config.dry_run:
            logger.info(f"Dry run, skipping {stages.RELEASE_STEP} and {stages.SOURCE_RELEASE}")
            self.source.complete_dry_run(self.ctx)
            return

        self._run_stage(stages.RELEASE_STEP)
        self._run_stage(stages.SOURCE_RELEASE)

    def default_body(self, stage: str) -> Callable[[], None]:
        """Return the built-in body of ``stage`` so an override can wrap it."""
        if stage not in stages.STAGES:
            raise KeyError(f"Unknown stage: {stage}")
        return getattr(self, f"_{stage}")

    def _run_stage(self, stage: str) -> None:
        stage_ctx.set(stage)

        for hook in self.hooks.get(stages.hook_point("pre", stage)):
            hook(self)

        override = self.overrides.get(stage)
        if override is not None:
            logger.info(f"Running override for {stage}")
            override(self)
        else:
            self.default_body(stage)()

        if stage == stages.SOURCE_CONFIGURE:
            self._source_configured = True
        self._check_postconditions(stage)

        for hook in self.hooks.get(stages.hook_point("post", stage)):
            hook(self)

    def _check_postconditions(self, stage: str) -> None:
        required: list[str] = []
        if stage == stages.SOURCE_CONFIGURE:
            required = ["git_parent_path"]
        elif stage == stages.SOURCE_PROCESS_PUSH_PAYLOAD:
            required = _PAYLOAD_FIELDS
        elif stage == stages.SOURCE_PROCESS_PULL_REQUEST_PAYLOAD:
            required = _PAYLOAD_FIELDS + ["base_info"]
        elif stage == stages.PACKAGE_STEP and self.ctx.is_pull_request:
            required = ["release_commit"]

        missing = [name for name in required if getattr(self.ctx, name) is None]
        if missing:
            raise StagePostconditionError(stage, missing)

    def _report_failure(self, exc: Exception) -> None:
        if not self._source_configured:
            logger.warning("Source was never configured, skipping failure report")
            return
        if self._failure_reported:
            return
        self._failure_reported = True

        try:
            self.source.process_failure(self.ctx, exc)
        except Exception:
            logger.exception("Could not report failure to the source")

    def _load_repository_config(self) -> None:
        """Re-resolve configuration with the repository file and apply its hooks."""
        if self.resolver is None:
            return

        repo_path = self.ctx.require_workspace()
        self.config = self.resolver.resolve_with_repository(repo_path, self.config)
        self.source.reconfigure(self.config)
        transform.apply(self, repo_path / self.config.repo_config_file_name, scope="repo")

    # Default stage bodies

    def _source_configure(self) -> None:
        self.source.configure(self.ctx)

    def _runner_retrieve_payload(self) -> None:
        payload, is_pull_request = self.runner.retrieve_payload(self.config, self.source)
        self.ctx.payload = payload
        self.ctx.is_pull_request = is_pull_request

    def _source_process_pull_request_payload(self) -> None:
        self.source.process_pull_request_payload(self.ctx, self.ctx.payload or {})

    def _source_process_push_payload(self) -> None:
        self.source.process_push_payload(self.ctx, self.ctx.payload or {})

    def _build_step(self) -> None:
        self.package.build(self.ctx, self.config)

    def _test_step(self) -> None:
        self.package.test(self.ctx, self.config)

    def _package_step(self) -> None:
        self.ctx.release_commit = self.package.package(self.ctx, self.config)

    def _release_step(self) -> None:
        self.package.release(self.ctx, self.config)

    def _source_release(self) -> None:
        self.source.release(self.ctx)


def create_engine(
    resolver: ConfigurationResolver, config: Configuration | None = None
) -> PipelineEngine:
    """Resolve configuration, pick the adapters it names and apply global hooks."""
    config = config or resolver.resolve()
    engine = PipelineEngine(
        config,
        source=SourceRegistry.create(config),
        runner=RunnerRegistry.create(config),
        package=PackageRegistry.create(config),
        resolver=resolver,
    )
    transform.apply(engine, resolver.system_config_file, scope="global")
    return engine
