"""Python distribution strategy.

The version is single-sourced from a ``VERSION`` file at the repository root,
which setup.py / pyproject.toml is expected to read.
"""

import logging
from pathlib import Path

from release_pilot.config import Configuration
from release_pilot.engine.versioning import bump_version
from release_pilot.errors import (
    BuildPackageInvalid,
    ReleaseCredentialsMissing,
    ReleasePackageError,
    TestDependenciesError,
)
from release_pilot.packages.base import PackageRegistry, PackageStrategy, ensure_dir, ensure_file
from release_pilot.schemas.pipeline import PipelineContext, ReleaseArtifact, ReleaseCommit

logger = logging.getLogger(__name__)

PYPIRC_TEMPLATE = """[distutils]
index-servers=pypi

[pypi]
repository = {repository}
username = {username}
password = {password}
"""


def read_version(path: Path) -> str:
    return (path / "VERSION").read_text(encoding="utf-8").strip()


@PackageRegistry.register("python")
class PythonStrategy(PackageStrategy):
    def build(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        if not (path / "setup.py").exists() and not (path / "pyproject.toml").exists():
            raise BuildPackageInvalid(
                "setup.py or pyproject.toml file is required to process Python package"
            )

        ensure_file(path / "VERSION", "0.0.0")
        next_version = bump_version(read_version(path), config.engine_version_bump_type)
        (path / "VERSION").write_text(next_version, encoding="utf-8")
        ctx.release_version = next_version
        logger.info(f"Bumped VERSION to {next_version}")

        ensure_file(path / "requirements.txt")
        ensure_dir(path / "tests")
        ensure_file(path / "tests" / "__init__.py")

    def test(self, ctx: PipelineContext, config: Configuration) -> None:
        self.run("pip install -e .", ctx.require_workspace(), TestDependenciesError)
        self.run_test_command(ctx, config, "tox")

    def package(self, ctx: PipelineContext, config: Configuration) -> ReleaseCommit:
        return self.commit_and_tag(ctx, read_version(ctx.require_workspace()))

    def release(self, ctx: PipelineContext, config: Configuration) -> None:
        if not config.pypi_username or not config.pypi_password:
            raise ReleaseCredentialsMissing(
                "Cannot deploy python package to pypi, credentials missing"
            )

        path = ctx.require_workspace()
        pypirc = (ctx.git_parent_path or path.parent) / ".pypirc"
        pypirc.write_text(
            PYPIRC_TEMPLATE.format(
                repository=config.pypi_repository,
                username=config.pypi_username,
                password=config.pypi_password,
            )
        )
        pypirc.chmod(0o600)

        self.run("python -m build --sdist", path, ReleasePackageError)
        self.run(f"twine upload --config-file {pypirc} dist/*", path, ReleasePackageError)

        for dist in sorted((path / "dist").glob("*.tar.gz")):
            ctx.release_artifacts.append(ReleaseArtifact(path=dist, name=dist.name))
