import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Self

from revbuild.exceptions import InvalidRevisionKindError


class RevisionKind(StrEnum):
    BRANCH = "branch"
    TAG = "tag"
    COMMIT = "commit"

    @classmethod
    def parse(cls, text: str) -> Self:
        try:
            return cls(text.lower())
        except (ValueError, AttributeError):
            raise InvalidRevisionKindError(text) from None


class FailurePolicy(StrEnum):
    FAIL_FAST = "fail-fast"
    CONTINUE = "continue"


@dataclass(eq=True, frozen=True)
class RevisionRequest:
    project_locator: str
    commit_id: str
    pack_option: str | None = None
    kind: RevisionKind = RevisionKind.COMMIT


@dataclass(eq=True, frozen=True)
class WorkUnit:
    """One (revision, option) pair to build for a project file."""

    commit_id: str
    pack_option: str | None = None
    kind: RevisionKind = RevisionKind.COMMIT


# repo root -> project file -> units
RepositoryWorkSet = dict[str, dict[str, set[WorkUnit]]]


@dataclass(eq=True, frozen=True)
class ArtifactDescriptor:
    path: str
    logical_name: str
    version: str
    project_file: str
    requested_ids: tuple[str, ...]
    commit_sha: str

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)

    @property
    def aliases(self) -> str:
        """Every identifier that requested this commit, as an msbuild list."""
        return ",".join(self.requested_ids)


def package_name(project_file: str, commit_sha: str) -> str:
    project_name = os.path.splitext(os.path.basename(project_file))[0]
    return f"{project_name}.{commit_sha}"


def artifact_file_name(name: str, version: str) -> str:
    return f"{name}.{version}.nupkg"
