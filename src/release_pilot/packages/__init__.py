from release_pilot.packages.base import PackageRegistry, PackageStrategy, run_command
from release_pilot.packages.chef import ChefStrategy
from release_pilot.packages.default import DefaultStrategy
from release_pilot.packages.node import NodeStrategy
from release_pilot.packages.python import PythonStrategy
from release_pilot.packages.ruby import RubyStrategy

__all__ = [
    "ChefStrategy",
    "DefaultStrategy",
    "NodeStrategy",
    "PackageRegistry",
    "PackageStrategy",
    "PythonStrategy",
    "RubyStrategy",
    "run_command",
]
