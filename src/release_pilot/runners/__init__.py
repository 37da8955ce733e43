from release_pilot.runners.base import BaseRunner, RunnerRegistry
from release_pilot.runners.circleci import CircleCIRunner
from release_pilot.runners.default import DefaultRunner

__all__ = [
    "BaseRunner",
    "CircleCIRunner",
    "DefaultRunner",
    "RunnerRegistry",
]
