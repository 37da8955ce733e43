from release_pilot.schemas.payload import RefInfo, RepoInfo, build_push_payload, validate_ref_payload
from release_pilot.schemas.pipeline import PipelineContext, ReleaseArtifact, ReleaseCommit

__all__ = [
    "PipelineContext",
    "RefInfo",
    "ReleaseArtifact",
    "ReleaseCommit",
    "RepoInfo",
    "build_push_payload",
    "validate_ref_payload",
]
