from release_pilot.runners.base import BaseRunner, RunnerRegistry, parse_int


@RunnerRegistry.register("default")
class DefaultRunner(BaseRunner):
    """Runner whose pull request identifier is the bare number."""

    def parse_pull_request_number(self, identifier: str) -> int:
        return parse_int(identifier)
