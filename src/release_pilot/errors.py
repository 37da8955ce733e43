"""Error taxonomy for release pipelines.

Validation and authorization errors represent policy decisions and are never
retried. Subprocess failures carry the offending command in their message.
"""


class ReleasePilotError(Exception):
    """Base exception for all release pipeline errors."""

    pass


class ConfigFileUnreadable(ReleasePilotError):
    """Raised when a configuration file is missing or cannot be parsed.

    The resolver treats this as a soft condition and falls back to defaults.
    """

    pass


# Source errors


class SourceUnspecifiedError(ReleasePilotError):
    """Raised when no usable source adapter is configured."""

    pass


class SourceAuthenticationFailed(ReleasePilotError):
    """Raised when an authenticated client for the source cannot be created."""

    pass


class SourcePayloadFormatError(ReleasePilotError):
    """Raised when a trigger payload is missing required fields."""

    pass


class SourcePayloadUnsupported(ReleasePilotError):
    """Raised when a payload is well formed but cannot be processed."""

    pass


class SourceUnauthorizedUser(ReleasePilotError):
    """Raised when the pull request opener is not a collaborator."""

    pass


# Engine errors


class EngineUnspecifiedError(ReleasePilotError):
    """Raised when the package type has no registered strategy."""

    pass


class EngineTransformUnavailableStep(ReleasePilotError):
    """Raised when a hook file touches a stage it may not customize."""

    pass


class StagePostconditionError(ReleasePilotError):
    """Raised when a stage finishes without setting its required outputs."""

    def __init__(self, stage: str, missing: list[str]):
        super().__init__(f"Stage '{stage}' did not set required fields: {', '.join(missing)}")
        self.stage = stage
        self.missing = missing


# Package strategy errors


class BuildPackageInvalid(ReleasePilotError):
    """Raised when a required package file or structure is missing."""

    pass


class BuildPackageFailed(ReleasePilotError):
    """Raised when the package could not be built."""

    pass


class TestDependenciesError(ReleasePilotError):
    """Raised when installing package dependencies fails."""

    __test__ = False


class TestRunnerError(ReleasePilotError):
    """Raised when the package test command fails."""

    __test__ = False


class ReleaseCredentialsMissing(ReleasePilotError):
    """Raised when registry credentials are not configured."""

    pass


class ReleasePackageError(ReleasePilotError):
    """Raised when publishing the package to its registry fails."""

    pass
