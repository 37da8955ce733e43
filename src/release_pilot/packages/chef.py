"""Chef cookbook strategy, publishing to the Chef Supermarket."""

import logging
import re
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
from release_pilot.schemas.pipeline import PipelineContext, ReleaseCommit

logger = logging.getLogger(__name__)

METADATA_VERSION_RE = re.compile(r"""(version\s+['"])([0-9.]+)(['"])""")
METADATA_NAME_RE = re.compile(r"""^\s*name\s+['"]([^'"]+)['"]""", re.MULTILINE)

KNIFE_TEMPLATE = """node_name "{username}"
client_key "{pem_path}"
cookbook_path ["{cookbook_path}"]
"""


def read_metadata(path: Path) -> str:
    metadata = path / "metadata.rb"
    if not metadata.exists():
        raise BuildPackageInvalid("metadata.rb file is required to process Chef cookbook")
    return metadata.read_text(encoding="utf-8")


def metadata_version(metadata: str) -> str:
    match = METADATA_VERSION_RE.search(metadata)
    if not match:
        raise BuildPackageInvalid("version not found in metadata.rb")
    return match.group(2)


def metadata_name(metadata: str) -> str:
    match = METADATA_NAME_RE.search(metadata)
    if not match:
        raise BuildPackageInvalid("name not found in metadata.rb")
    return match.group(1)


@PackageRegistry.register("chef")
class ChefStrategy(PackageStrategy):
    def build(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        metadata = read_metadata(path)
        next_version = bump_version(metadata_version(metadata), config.engine_version_bump_type)
        (path / "metadata.rb").write_text(
            METADATA_VERSION_RE.sub(rf"\g<1>{next_version}\g<3>", metadata, count=1),
            encoding="utf-8",
        )
        ctx.release_version = next_version

        ensure_file(path / "Rakefile", "task :test\n")
        ensure_file(path / "Berksfile", "source 'https://supermarket.chef.io'\nmetadata\n")
        ensure_file(path / "Gemfile", "source 'https://rubygems.org'\n")
        ensure_dir(path / "spec")

    def test(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        self.run("berks install", path, TestDependenciesError)
        self.run("bundle install", path, TestDependenciesError)
        self.run_test_command(ctx, config, "rake test")

    def package(self, ctx: PipelineContext, config: Configuration) -> ReleaseCommit:
        version = metadata_version(read_metadata(ctx.require_workspace()))
        return self.commit_and_tag(ctx, version)

    def release(self, ctx: PipelineContext, config: Configuration) -> None:
        key = config.chef_supermarket_key_decoded()
        if not config.chef_supermarket_username or not key:
            raise ReleaseCredentialsMissing(
                "Cannot deploy cookbook to supermarket, credentials missing"
            )

        path = ctx.require_workspace()
        parent = ctx.git_parent_path or path.parent
        pem_path = parent / "client.pem"
        knife_path = parent / "knife.rb"

        pem_path.write_text(key)
        pem_path.chmod(0o600)
        knife_path.write_text(
            KNIFE_TEMPLATE.format(
                username=config.chef_supermarket_username,
                pem_path=pem_path,
                cookbook_path=parent,
            )
        )

        name = metadata_name(read_metadata(path))
        self.run(
            f"knife cookbook site share {name} {config.chef_supermarket_type} -c {knife_path}",
            parent,
            ReleasePackageError,
        )
