from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from release_pilot import errors
from release_pilot.config import ConfigurationResolver
from release_pilot.engine import transform
from release_pilot.engine.pipeline import PipelineEngine, create_engine
from release_pilot.errors import (
    EngineTransformUnavailableStep,
    EngineUnspecifiedError,
    SourceAuthenticationFailed,
    SourceUnauthorizedUser,
    StagePostconditionError,
)
from release_pilot.packages.base import PackageStrategy
from release_pilot.runners import DefaultRunner
from release_pilot.runners.base import BaseRunner
from release_pilot.schemas.payload import validate_ref_payload
from release_pilot.schemas.pipeline import PipelineContext, ReleaseCommit
from release_pilot.sources.base import SourceAdapter


class RecordingSource(SourceAdapter):
    def __init__(self, config, events: list, root: Path, set_outputs: bool = True):
        super().__init__(config)
        self.events = events
        self.root = root
        self.set_outputs = set_outputs
        self.failures: list[BaseException] = []

    def configure(self, ctx: PipelineContext) -> None:
        self.events.append("configure")
        ctx.git_parent_path = self.root / "parent"
        ctx.git_parent_path.mkdir(parents=True)

    def fetch_pull_request(self, number: int) -> dict[str, Any]:
        raise AssertionError("runner fakes never ask the source")

    def _checkout(self, ctx: PipelineContext, payload: dict[str, Any]) -> None:
        if not self.set_outputs:
            return
        ctx.git_local_path = ctx.git_parent_path / "widgets"
        ctx.git_local_path.mkdir()
        ctx.git_local_branch = "main"
        ctx.head_info = validate_ref_payload(payload["head"], "head")

    def process_push_payload(self, ctx: PipelineContext, payload: dict[str, Any]) -> None:
        self.events.append("process_push")
        self._checkout(ctx, payload)

    def process_pull_request_payload(self, ctx: PipelineContext, payload: dict[str, Any]) -> None:
        self.events.append("process_pull_request")
        self._checkout(ctx, payload)
        if self.set_outputs:
            ctx.base_info = validate_ref_payload(payload["base"], "base")

    def release(self, ctx: PipelineContext) -> None:
        self.events.append("source_release")
        self.remove_workspace(ctx)

    def process_failure(self, ctx: PipelineContext, exc: BaseException) -> None:
        self.events.append("failure")
        self.failures.append(exc)
        self.remove_workspace(ctx)

    def close(self) -> None:
        self.events.append("close")


class RecordingRunner(BaseRunner):
    def __init__(self, events: list, payload: dict[str, Any], is_pull_request: bool):
        self.events = events
        self.payload = payload
        self.is_pull_request = is_pull_request

    def parse_pull_request_number(self, identifier: str) -> int:
        return int(identifier)

    def retrieve_payload(self, config, source) -> tuple[dict[str, Any], bool]:
        self.events.append("retrieve_payload")
        return self.payload, self.is_pull_request


class RecordingPackage(PackageStrategy):
    package_type = "recording"

    def __init__(self, events: list, release_commit: ReleaseCommit | None = None):
        super().__init__()
        self.events = events
        self.release_commit = release_commit or ReleaseCommit(sha="c" * 40, name="v1.0.1")
        self.fail_on: str | None = None

    def _record(self, step: str) -> None:
        self.events.append(step)
        if self.fail_on == step:
            raise errors.TestRunnerError(f"'{step}' failed with exit code 1")

    def build(self, ctx, config) -> None:
        self._record("build")

    def test(self, ctx, config) -> None:
        self._record("test")

    def package(self, ctx, config) -> ReleaseCommit | None:
        self._record("package")
        return self.release_commit

    def release(self, ctx, config) -> None:
        self._record("release")


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def build_engine(make_config, events: list, tmp_path: Path, pull_request_payload, push_payload):
    def _build(is_pull_request: bool = True, set_outputs: bool = True, **options: Any):
        config = make_config(**options)
        payload = pull_request_payload if is_pull_request else push_payload
        source = RecordingSource(config, events, tmp_path, set_outputs=set_outputs)
        runner = RecordingRunner(events, payload, is_pull_request)
        package = RecordingPackage(events)
        return PipelineEngine(config, source, runner, package)

    return _build


def test_pull_request_runs_every_stage_in_order(build_engine, events: list) -> None:
    engine = build_engine(is_pull_request=True)

    ctx = engine.start()

    assert events == [
        "configure",
        "retrieve_payload",
        "process_pull_request",
        "build",
        "test",
        "package",
        "release",
        "source_release",
        "close",
    ]
    assert ctx.release_commit.name == "v1.0.1"


def test_push_never_releases_and_removes_workspace(build_engine, events: list) -> None:
    engine = build_engine(is_pull_request=False)

    ctx = engine.start()

    assert events == ["configure", "retrieve_payload", "process_push", "build", "test", "package", "close"]
    assert not ctx.git_parent_path.exists()


def test_dry_run_skips_release_stages(build_engine, events: list) -> None:
    engine = build_engine(is_pull_request=True, dry_run=True)

    ctx = engine.start()

    assert "release" not in events
    assert "source_release" not in events
    assert not ctx.git_parent_path.exists()


def test_hooks_wrap_stage_in_registration_order(build_engine, events: list) -> None:
    engine = build_engine()
    engine.hooks.add("pre_build_step", lambda e: events.append("pre-1"))
    engine.hooks.add("pre_build_step", lambda e: events.append("pre-2"))
    engine.hooks.add("post_build_step", lambda e: events.append("post"))

    engine.start()

    start = events.index("pre-1")
    assert events[start : start + 4] == ["pre-1", "pre-2", "build", "post"]


def test_override_replaces_stage_body(build_engine, events: list) -> None:
    engine = build_engine()
    engine.overrides["test_step"] = lambda e: events.append("custom tests")

    engine.start()

    assert "custom tests" in events
    assert "test" not in events


def test_unknown_hook_point_is_rejected(build_engine) -> None:
    engine = build_engine()

    with pytest.raises(KeyError):
        engine.hooks.add("pre_deploy_step", lambda e: None)


def test_stage_failure_is_reported_once_and_reraised(build_engine, events: list) -> None:
    engine = build_engine()
    engine.package.fail_on = "test"

    with pytest.raises(errors.TestRunnerError):
        engine.start()

    assert events.count("failure") == 1
    assert "package" not in events
    assert isinstance(engine.source.failures[0], errors.TestRunnerError)


def test_hook_failure_aborts_pipeline(build_engine, events: list) -> None:
    engine = build_engine()

    def explode(e: PipelineEngine) -> None:
        raise RuntimeError("hook exploded")

    engine.hooks.add("post_build_step", explode)

    with pytest.raises(RuntimeError, match="hook exploded"):
        engine.start()

    assert "test" not in events
    assert events.count("failure") == 1


def test_missing_payload_outputs_violate_postcondition(build_engine, events: list) -> None:
    engine = build_engine(set_outputs=False)

    with pytest.raises(StagePostconditionError) as exc_info:
        engine.start()

    assert exc_info.value.stage == "source_process_pull_request_payload"
    assert set(exc_info.value.missing) == {"git_local_path", "git_local_branch", "head_info", "base_info"}
    assert "build" not in events
    assert events.count("failure") == 1


def test_package_step_must_produce_release_commit(build_engine, events: list) -> None:
    engine = build_engine()
    engine.overrides["package_step"] = lambda e: None

    with pytest.raises(StagePostconditionError) as exc_info:
        engine.start()

    assert exc_info.value.missing == ["release_commit"]
    assert "release" not in events


def test_package_override_can_wrap_default_body(
    build_engine, events: list, tmp_path: Path
) -> None:
    engine = build_engine()
    hook_file = tmp_path / "hooks.yml"
    hook_file.write_text(
        "hooks:\n"
        "  package_step:\n"
        "    override: |\n"
        "      log('packaging with custom step')\n"
        "      default()\n"
    )
    transform.apply(engine, hook_file, "global")

    ctx = engine.start()

    assert ctx.release_commit.name == "v1.0.1"
    assert events[-3:] == ["release", "source_release", "close"]
    assert "failure" not in events


def test_default_body_rejects_unknown_stage(build_engine) -> None:
    engine = build_engine()

    with pytest.raises(KeyError):
        engine.default_body("deploy_step")


def test_failure_before_source_configured_is_not_reported(build_engine, events: list) -> None:
    engine = build_engine()

    def fail_configure(ctx: PipelineContext) -> None:
        raise SourceAuthenticationFailed("Missing source_github_access_token")

    engine.source.configure = fail_configure

    with pytest.raises(SourceAuthenticationFailed):
        engine.start()

    assert "failure" not in events


def test_engine_starts_only_once(build_engine) -> None:
    engine = build_engine()
    engine.start()

    with pytest.raises(RuntimeError):
        engine.start()


def test_repository_config_is_layered_after_checkout(
    events: list, tmp_path: Path, pull_request_payload
) -> None:
    system_file = tmp_path / "system.yml"
    system_file.write_text("engine_cmd_test: make test\n")
    resolver = ConfigurationResolver(
        {
            "config_file": system_file,
            "source_github_access_token": "t0ken",
            "source_release_delay_seconds": 0,
        }
    )
    config = resolver.resolve()
    source = RecordingSource(config, events, tmp_path)
    engine = PipelineEngine(
        config,
        source,
        RecordingRunner(events, pull_request_payload, True),
        RecordingPackage(events),
        resolver=resolver,
    )

    def write_repo_file(e: PipelineEngine) -> None:
        (e.ctx.git_local_path / ".release-pilot.yml").write_text(
            "engine_cmd_test: make check\n"
            "hooks:\n"
            "  build_step:\n"
            "    pre: log('repository hook')\n"
        )

    engine.hooks.add("post_source_process_pull_request_payload", write_repo_file)

    engine.start()

    assert engine.config.engine_cmd_test == "make check"
    assert source.config is engine.config
    assert len(engine.hooks.get("pre_build_step")) == 2


def test_repository_hook_on_protected_stage_fails_run(
    events: list, tmp_path: Path, pull_request_payload
) -> None:
    resolver = ConfigurationResolver(
        {"config_file": tmp_path / "missing.yml", "source_github_access_token": "t0ken"}
    )
    config = resolver.resolve()
    engine = PipelineEngine(
        config,
        RecordingSource(config, events, tmp_path),
        RecordingRunner(events, pull_request_payload, True),
        RecordingPackage(events),
        resolver=resolver,
    )

    def write_repo_file(e: PipelineEngine) -> None:
        (e.ctx.git_local_path / ".release-pilot.yml").write_text(
            "hooks:\n  runner_retrieve_payload:\n    override: log('hijack')\n"
        )

    engine.hooks.add("post_source_process_pull_request_payload", write_repo_file)

    with pytest.raises(EngineTransformUnavailableStep):
        engine.start()

    assert "build" not in events
    assert events.count("failure") == 1


# End-to-end scenarios with the GitHub source, default runner and a recording package


def test_scenario_push_release(
    make_source, github_client, fake_repo_manager, events: list
) -> None:
    source = make_source(
        runner_sha="b" * 40,
        runner_branch="main",
        runner_clone_url="https://github.com/acme/widgets.git",
        runner_repo_name="widgets",
        runner_repo_full_name="acme/widgets",
    )
    engine = PipelineEngine(source.config, source, DefaultRunner(), RecordingPackage(events))

    ctx = engine.start()

    assert events == ["build", "test", "package"]
    assert fake_repo_manager.operations() == ["clone", "checkout"]
    assert github_client.statuses == []
    assert github_client.releases == []
    assert not ctx.git_parent_path.exists()
    assert github_client.closed


def test_scenario_pull_request_release(
    make_source, github_client, fake_repo_manager, events: list, pull_request_payload
) -> None:
    github_client.pull_requests[7] = pull_request_payload
    source = make_source(runner_pull_request="7", runner_repo_full_name="acme/widgets")
    engine = PipelineEngine(source.config, source, DefaultRunner(), RecordingPackage(events))

    ctx = engine.start()

    assert events == ["build", "test", "package", "release"]
    assert [s["state"] for s in github_client.statuses] == ["pending", "success"]
    assert github_client.releases[0]["tag_name"] == "v1.0.1"
    assert ("push", "pr_7", "main") in fake_repo_manager.calls
    assert not ctx.git_parent_path.exists()


def test_scenario_pull_request_from_non_collaborator(
    make_source, github_client, fake_repo_manager, events: list, pull_request_payload
) -> None:
    pull_request_payload["user"]["login"] = "mallory"
    github_client.pull_requests[7] = pull_request_payload
    source = make_source(runner_pull_request="7", runner_repo_full_name="acme/widgets")
    engine = PipelineEngine(source.config, source, DefaultRunner(), RecordingPackage(events))

    with pytest.raises(SourceUnauthorizedUser):
        engine.start()

    assert len(github_client.comments) == 1
    assert events == []
    assert fake_repo_manager.calls == []
    assert github_client.statuses == []
    assert not engine.ctx.git_parent_path.exists()


def test_create_engine_rejects_unknown_package_type(tmp_path: Path) -> None:
    resolver = ConfigurationResolver(
        {"config_file": tmp_path / "missing.yml", "package_type": "cobol"}
    )

    with pytest.raises(EngineUnspecifiedError):
        create_engine(resolver)


def test_create_engine_applies_global_hooks(tmp_path: Path) -> None:
    system_file = tmp_path / "system.yml"
    system_file.write_text(
        "package_type: python\n"
        "hooks:\n"
        "  source_configure:\n"
        "    post: log('configured')\n"
    )

    engine = create_engine(ConfigurationResolver({"config_file": system_file}))

    assert engine.config.package_type == "python"
    assert engine.package.package_type == "python"
    assert len(engine.hooks.get("post_source_configure")) == 2


def test_scenario_pull_request_dry_run(
    make_source, github_client, fake_repo_manager, events: list, pull_request_payload
) -> None:
    github_client.pull_requests[7] = pull_request_payload
    source = make_source(
        runner_pull_request="7", runner_repo_full_name="acme/widgets", dry_run=True
    )
    engine = PipelineEngine(source.config, source, DefaultRunner(), RecordingPackage(events))

    ctx = engine.start()

    assert events == ["build", "test", "package"]
    assert [s["state"] for s in github_client.statuses] == ["pending", "success"]
    assert github_client.releases == []
    assert "push" not in fake_repo_manager.operations()
    assert not ctx.git_parent_path.exists()
