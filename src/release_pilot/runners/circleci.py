"""CircleCI runner.

CircleCI exposes the pull request as a URL in ``CI_PULL_REQUEST``, e.g.
``https://github.com/owner/repo/pull/42``.
"""

from urllib.parse import urlsplit

from release_pilot.runners.base import BaseRunner, RunnerRegistry, parse_int


@RunnerRegistry.register("circleci")
class CircleCIRunner(BaseRunner):
    def parse_pull_request_number(self, identifier: str) -> int:
        path = urlsplit(identifier).path.rstrip("/")
        return parse_int(path.rsplit("/", 1)[-1])
