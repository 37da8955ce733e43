"""Generic strategy driven entirely by configured commands.

The current version is taken from the latest ``vX.Y.Z`` tag (``0.0.0`` when the
repository has no tags yet).
"""

import logging

from release_pilot.config import Configuration
from release_pilot.engine.versioning import bump_version
from release_pilot.packages.base import PackageRegistry, PackageStrategy
from release_pilot.schemas.pipeline import PipelineContext, ReleaseCommit
from release_pilot.workspace.repo_manager import GitError

logger = logging.getLogger(__name__)


@PackageRegistry.register("default")
class DefaultStrategy(PackageStrategy):
    def build(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        try:
            current = self.repo_manager.latest_tag_commit(path).name
        except GitError:
            logger.info("No release tags found, starting from 0.0.0")
            current = "0.0.0"
        ctx.release_version = bump_version(current, config.engine_version_bump_type)

    def test(self, ctx: PipelineContext, config: Configuration) -> None:
        self.run_test_command(ctx, config, None)

    def package(self, ctx: PipelineContext, config: Configuration) -> ReleaseCommit:
        if ctx.release_version is None:
            raise RuntimeError("Release version was not computed by the build step")
        return self.commit_and_tag(ctx, ctx.release_version)

    def release(self, ctx: PipelineContext, config: Configuration) -> None:
        logger.info("No package registry for the default strategy, nothing to publish")
