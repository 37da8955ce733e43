"""Schemas for trigger payloads (push and pull request)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from release_pilot.errors import SourcePayloadFormatError


class RepoInfo(BaseModel):
    """Repository section of a payload ref."""

    model_config = ConfigDict(extra="allow")

    clone_url: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    full_name: str | None = None
    default_branch: str | None = None


class RefInfo(BaseModel):
    """A ``head`` or ``base`` section: commit, ref and owning repository."""

    model_config = ConfigDict(extra="allow")

    sha: str = Field(..., min_length=1)
    ref: str = Field(..., min_length=1)
    repo: RepoInfo


def validate_ref_payload(ref_payload: Any, section: str = "head") -> RefInfo:
    """Validate a ``head``/``base`` section of a payload.

    Raises:
        SourcePayloadFormatError: If ``sha``, ``ref``, ``repo.clone_url`` or
            ``repo.name`` is missing
    """
    if not isinstance(ref_payload, dict):
        raise SourcePayloadFormatError(f'Incorrectly formatted payload, missing "{section}" key')
    try:
        return RefInfo.model_validate(ref_payload)
    except ValidationError as exc:
        missing = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        raise SourcePayloadFormatError(
            f'Incorrectly formatted payload, invalid "{section}" keys: {", ".join(missing)}'
        )


def build_push_payload(
    *,
    sha: str,
    ref: str,
    clone_url: str,
    name: str,
    full_name: str,
) -> dict[str, Any]:
    """Build a push payload shaped like the ``head`` of a pull request."""
    return {
        "head": {
            "sha": sha,
            "ref": ref,
            "repo": {
                "clone_url": clone_url,
                "name": name,
                "full_name": full_name,
            },
        }
    }
