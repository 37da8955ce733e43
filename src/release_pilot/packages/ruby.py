"""RubyGems strategy.

The gem version lives in ``lib/<gem_name>/version.rb`` as generated by
``bundle gem``::

    module MyGem
      VERSION = "0.1.0"
    end
"""

import logging
import re
from pathlib import Path

from release_pilot.config import Configuration
from release_pilot.engine.versioning import bump_version
from release_pilot.errors import (
    BuildPackageFailed,
    BuildPackageInvalid,
    ReleaseCredentialsMissing,
    ReleasePackageError,
    TestDependenciesError,
)
from release_pilot.packages.base import PackageRegistry, PackageStrategy, ensure_dir, ensure_file
from release_pilot.schemas.pipeline import PipelineContext, ReleaseArtifact, ReleaseCommit

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r"""(VERSION\s*=\s*['"])([0-9.]+)(['"])""")
GEMSPEC_NAME_RE = re.compile(r"""\.name\s*=\s*['"]([^'"]+)['"]""")


def find_gemspec(path: Path) -> Path:
    gemspecs = sorted(path.glob("*.gemspec"))
    if not gemspecs:
        raise BuildPackageInvalid("*.gemspec file is required to process Ruby gem")
    return gemspecs[0]


def gem_name(gemspec: Path) -> str:
    match = GEMSPEC_NAME_RE.search(gemspec.read_text(encoding="utf-8"))
    return match.group(1) if match else gemspec.stem


def version_file(path: Path, name: str) -> Path:
    return path / "lib" / name / "version.rb"


def read_gem_version(path: Path, name: str) -> str:
    match = VERSION_RE.search(version_file(path, name).read_text(encoding="utf-8"))
    if not match:
        raise BuildPackageInvalid(f"VERSION constant not found in lib/{name}/version.rb")
    return match.group(2)


def find_gem(path: Path) -> Path:
    gems = sorted(path.glob("*.gem"))
    if not gems:
        raise TestDependenciesError("Ruby gem file could not be found")
    return gems[0]


@PackageRegistry.register("ruby")
class RubyStrategy(PackageStrategy):
    def build(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        gemspec = find_gemspec(path)
        name = gem_name(gemspec)

        vfile = version_file(path, name)
        if not vfile.exists():
            raise BuildPackageInvalid("version.rb file is required to process Ruby gem")

        next_version = bump_version(read_gem_version(path, name), config.engine_version_bump_type)
        content = vfile.read_text(encoding="utf-8")
        vfile.write_text(VERSION_RE.sub(rf"\g<1>{next_version}\g<3>", content, count=1))
        ctx.release_version = next_version

        ensure_file(path / "Gemfile", "source 'https://rubygems.org'\ngemspec\n")
        ensure_file(path / "Rakefile", "task :default => :spec\n")
        ensure_dir(path / "spec")
        ensure_file(path / ".gitignore", "*.gem\n.bundle/\nGemfile.lock\n")

        self.run(f"gem build {gemspec.name}", path, BuildPackageFailed)
        if not (path / f"{name}-{next_version}.gem").exists():
            raise BuildPackageFailed(f"gem build failed. {name}-{next_version}.gem not found")

    def test(self, ctx: PipelineContext, config: Configuration) -> None:
        path = ctx.require_workspace()
        gem = find_gem(path)
        self.run(f"gem install ./{gem.name} --ignore-dependencies", path, TestDependenciesError)
        self.run("bundle install", path, TestDependenciesError)
        self.run_test_command(ctx, config, "rake spec")

    def package(self, ctx: PipelineContext, config: Configuration) -> ReleaseCommit:
        path = ctx.require_workspace()
        version = read_gem_version(path, gem_name(find_gemspec(path)))
        return self.commit_and_tag(ctx, version)

    def release(self, ctx: PipelineContext, config: Configuration) -> None:
        if not config.rubygems_api_key:
            raise ReleaseCredentialsMissing(
                "Cannot deploy package to rubygems, credentials missing"
            )

        credentials_dir = self.home_path / ".gem"
        credentials_dir.mkdir(parents=True, exist_ok=True)
        credentials = credentials_dir / "credentials"
        credentials.write_text(f"---\n:rubygems_api_key: {config.rubygems_api_key}\n")
        credentials.chmod(0o600)

        path = ctx.require_workspace()
        gem = find_gem(path)
        self.run(f"gem push {gem.name}", path, ReleasePackageError)
        ctx.release_artifacts.append(ReleaseArtifact(path=gem, name=gem.name))
