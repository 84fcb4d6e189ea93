import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Protocol

from revbuild.exceptions import (
    RepositoryNotFoundError,
    UnresolvableRevisionError,
)
from revbuild.models import RevisionKind

GIT_MARKER = ".git"


class GitError(Exception):
    pass


@dataclass(eq=True, frozen=True)
class Head:
    ref: str
    detached: bool

    def __str__(self) -> str:
        return f"commit {self.ref}" if self.detached else f"branch {self.ref}"


class Repository(Protocol):
    """This protocol defines the only operations the builder
    performs against a repository working tree."""

    root: str

    def resolve(self, identifier: str, kind: RevisionKind) -> str:
        pass

    def current_head(self) -> Head:
        pass

    def checkout(self, target: Head) -> None:
        pass

    def has_uncommited_changes(self) -> bool:
        pass


def discover(path: str) -> str:
    """Walk up from path to the closest directory holding a .git marker."""
    current = os.path.realpath(path)
    if not os.path.isdir(current):
        current = os.path.dirname(current)
    while True:
        if os.path.exists(os.path.join(current, GIT_MARKER)):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            raise RepositoryNotFoundError(path)
        current = parent


def git_dir(repo_root: str) -> str:
    marker = os.path.join(repo_root, GIT_MARKER)
    return marker if os.path.isdir(marker) else repo_root


def _git(args: list[str], wd: str) -> subprocess.CompletedProcess:
    cmd = ["git", "-c", "advice.detachedHead=false", *args]
    logging.debug(f"running {' '.join(cmd)} in {wd}")
    try:
        return subprocess.run(
            cmd, cwd=wd, capture_output=True, text=True, check=False
        )
    except OSError as e:
        raise GitError(f"could not run git in {wd}: {e}") from e


def rev_parse(ref: str, wd: str) -> str:
    result = _git(["rev-parse", "--verify", "--quiet", ref], wd)
    if result.returncode != 0:
        raise GitError(f"git rev-parse failed for {ref}: {result.stderr}")
    return result.stdout.strip()


def resolve(identifier: str, kind: RevisionKind, wd: str) -> str:
    match kind:
        case RevisionKind.BRANCH:
            ref = f"refs/heads/{identifier}"
        case RevisionKind.TAG:
            ref = f"refs/tags/{identifier}"
        case _:
            ref = identifier
    try:
        return rev_parse(f"{ref}^{{commit}}", wd)
    except GitError:
        raise UnresolvableRevisionError(
            f"{kind} {identifier!r} does not resolve to a commit in {wd}"
        ) from None


def current_head(wd: str) -> Head:
    result = _git(["symbolic-ref", "--quiet", "--short", "HEAD"], wd)
    if result.returncode == 0:
        return Head(ref=result.stdout.strip(), detached=False)
    return Head(ref=rev_parse("HEAD", wd), detached=True)


def checkout(target: Head, wd: str) -> None:
    cmd = ["checkout", "--force"]
    if target.detached:
        cmd.append("--detach")
    cmd.append(target.ref)
    result = _git(cmd, wd)
    if result.returncode != 0:
        raise GitError(f"git checkout failed for {target}: {result.stderr}")


def has_uncommited_changes(wd: str) -> bool:
    result = _git(["status", "--porcelain", "--untracked-files=no"], wd)
    if result.returncode != 0:
        raise GitError(f"git status failed in {wd}: {result.stderr}")
    return bool(result.stdout.strip())


class GitRepository:
    def __init__(self, root: str):
        self.root = root

    def resolve(self, identifier: str, kind: RevisionKind) -> str:
        return resolve(identifier, kind, self.root)

    def current_head(self) -> Head:
        return current_head(self.root)

    def checkout(self, target: Head) -> None:
        checkout(target, self.root)

    def has_uncommited_changes(self) -> bool:
        return has_uncommited_changes(self.root)
