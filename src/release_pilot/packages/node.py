"""npm package strategy.

``npm version`` bumps package.json, commits and tags in one step, so the
release commit is read back from the latest tag.
"""

import json
import logging

from release_pilot.config import Configuration
from release_pilot.errors import (
    BuildPackageInvalid,
    ReleaseCredentialsMissing,
    ReleasePackageError,
    TestDependenciesError,
)
from release_pilot.packages.base import PackageRegistry, PackageStrategy, ensure_dir, ensure_file
from release_pilot.schemas.pipeline import PipelineContext, ReleaseCommit

logger = logging.getLogger(__name__)

NODE_GITIGNORE = "node_modules/\nnpm-debug.log*\ncoverage/\n"


@PackageRegistry.register("node")
class NodeStrategy(PackageStrategy):
    def build(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        if not (path / "package.json").exists():
            raise BuildPackageInvalid("package.json file is required to process npm package")

        ensure_dir(path / "test")
        ensure_file(path / ".gitignore", NODE_GITIGNORE)

    def test(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        self.run("npm install", path, TestDependenciesError)
        self.run("npm shrinkwrap", path, TestDependenciesError)
        self.run_test_command(ctx, config, "npm test")

    def package(self, ctx: PipelineContext, config: Configuration) -> ReleaseCommit:
        path = ctx.require_workspace()
        self.repo_manager.commit(path, "Committing automated changes before packaging.")

        bump = config.engine_version_bump_type.value
        self.run(
            f"npm version {bump} -m '(v%s) Automated packaging of release by release-pilot'",
            path,
            ReleasePackageError,
        )

        manifest = json.loads((path / "package.json").read_text(encoding="utf-8"))
        ctx.release_version = manifest.get("version")
        return self.repo_manager.latest_tag_commit(path)

    def release(self, ctx: PipelineContext, config: Configuration) -> None:
        if not config.npm_auth_token:
            raise ReleaseCredentialsMissing("Cannot deploy package to npm, credentials missing")

        npmrc = self.home_path / ".npmrc"
        npmrc.write_text(f"//registry.npmjs.org/:_authToken={config.npm_auth_token}\n")
        npmrc.chmod(0o600)

        self.run("npm publish .", ctx.require_workspace(), ReleasePackageError)
