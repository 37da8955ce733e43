"""Named pipeline stages and their extension points."""

SOURCE_CONFIGURE = "source_configure"
RUNNER_RETRIEVE_PAYLOAD = "runner_retrieve_payload"
SOURCE_PROCESS_PULL_REQUEST_PAYLOAD = "source_process_pull_request_payload"
SOURCE_PROCESS_PUSH_PAYLOAD = "source_process_push_payload"
BUILD_STEP = "build_step"
TEST_STEP = "test_step"
PACKAGE_STEP = "package_step"
RELEASE_STEP = "release_step"
SOURCE_RELEASE = "source_release"

STAGES: tuple[str, ...] = (
    SOURCE_CONFIGURE,
    RUNNER_RETRIEVE_PAYLOAD,
    SOURCE_PROCESS_PULL_REQUEST_PAYLOAD,
    SOURCE_PROCESS_PUSH_PAYLOAD,
    BUILD_STEP,
    TEST_STEP,
    PACKAGE_STEP,
    RELEASE_STEP,
    SOURCE_RELEASE,
)

# Stages that run before the repository is checked out; repository hook
# files may not customize them.
PROTECTED_STAGES: frozenset[str] = frozenset(
    {
        SOURCE_CONFIGURE,
        RUNNER_RETRIEVE_PAYLOAD,
        SOURCE_PROCESS_PULL_REQUEST_PAYLOAD,
        SOURCE_PROCESS_PUSH_PAYLOAD,
    }
)

HOOK_PREFIXES: tuple[str, ...] = ("pre", "post")


def hook_point(prefix: str, stage: str) -> str:
    return f"{prefix}_{stage}"
