import os
import shutil
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from revbuild.exceptions import (
    PackError,
    UnresolvableRevisionError,
)
from revbuild.models import (
    RevisionKind,
    artifact_file_name,
)
from revbuild.utils.cancellation import CancellationToken
from revbuild.utils.config import BuildSettings
from revbuild.utils.git import (
    GitError,
    Head,
)


class FakeRepository:
    """In-memory stand-in for a git working tree.

    refs maps (kind, name) to a commit sha. Every checkout is appended
    to the shared history list, tagged with the repository root.
    """

    def __init__(
        self,
        root: str,
        refs: dict[tuple[RevisionKind, str], str],
        history: list[tuple[str, str]],
        head: Head,
    ):
        self.root = root
        self.refs = refs
        self.history = history
        self.head = head
        self.dirty = False
        self.fail_checkout_to: set[str] = set()

    def resolve(self, identifier: str, kind: RevisionKind) -> str:
        try:
            return self.refs[(kind, identifier)]
        except KeyError:
            raise UnresolvableRevisionError(
                f"{kind} {identifier!r} does not resolve"
            ) from None

    def current_head(self) -> Head:
        return self.head

    def checkout(self, target: Head) -> None:
        if target.ref in self.fail_checkout_to:
            raise GitError(f"git checkout failed for {target}")
        self.history.append((self.root, target.ref))
        self.head = target

    def has_uncommited_changes(self) -> bool:
        return self.dirty


class FakeRepositories:
    def __init__(self) -> None:
        self.history: list[tuple[str, str]] = []
        self.repos: dict[str, FakeRepository] = {}
        self.refs: dict[tuple[RevisionKind, str], str] = {}
        self._lock = threading.Lock()

    def __call__(self, root: str) -> FakeRepository:
        with self._lock:
            if root not in self.repos:
                self.repos[root] = FakeRepository(
                    root, self.refs, self.history, Head("main", detached=False)
                )
            return self.repos[root]

    def add_commit(self, sha: str) -> None:
        self.refs[(RevisionKind.COMMIT, sha)] = sha

    def checkouts(self, root: str) -> list[str]:
        return [ref for r, ref in self.history if r == root]


class FakePackager:
    def __init__(self, output_dir: str, version: str = "0.0.1"):
        self.output_dir = output_dir
        self.version = version
        self.prepared: list[tuple[str, str]] = []
        self.packed: list[tuple[str, str | None]] = []
        self.fail_names: set[str] = set()
        self.produce = True
        self.on_pack: Callable[[], None] | None = None
        self._current: str | None = None

    def artifact_path(self, name: str) -> str:
        return os.path.join(self.output_dir, artifact_file_name(name, self.version))

    def find_existing(self, name: str) -> str | None:
        path = self.artifact_path(name)
        return path if os.path.isfile(path) else None

    def prepare(self, project_file: str, name: str) -> None:
        self.prepared.append((project_file, name))
        self._current = name

    def pack(self, project_file: str, option: str | None) -> None:
        assert self._current is not None
        self.packed.append((self._current, option))
        if self.on_pack is not None:
            self.on_pack()
        if self._current in self.fail_names:
            raise PackError(f"packing {self._current} failed")
        if self.produce:
            Path(self.artifact_path(self._current)).write_text("nupkg")


def make_project(base: Path, repo: str, project: str) -> str:
    """Create <base>/<repo>/.git and <base>/<repo>/<project>/<project>.csproj."""
    (base / repo / ".git").mkdir(parents=True, exist_ok=True)
    project_dir = base / repo / project
    project_dir.mkdir(parents=True, exist_ok=True)
    project_file = project_dir / f"{project}.csproj"
    project_file.write_text('<Project Sdk="Microsoft.NET.Sdk">\n</Project>\n')
    return str(project_file)


@pytest.fixture
def repositories() -> FakeRepositories:
    return FakeRepositories()


@pytest.fixture
def packager(tmp_path: Path) -> FakePackager:
    output = tmp_path / "out"
    output.mkdir()
    return FakePackager(str(output))


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def settings() -> BuildSettings:
    return BuildSettings(thread_pool_size=4)


@pytest.fixture
def project_factory(tmp_path: Path) -> Callable[[str, str], str]:
    def f(repo: str, project: str) -> str:
        return make_project(tmp_path, repo, project)

    return f


def _git(wd: Path, *args: str) -> str:
    cmd = [
        "git",
        "-c",
        "user.name=revbuild",
        "-c",
        "user.email=revbuild@example.com",
        "-c",
        "commit.gpgsign=false",
        "-c",
        "tag.gpgsign=false",
        *args,
    ]
    result = subprocess.run(cmd, cwd=wd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> tuple[Path, list[str]]:
    """A real git repository with three commits on branch main,
    a lightweight tag v1 on the first and an annotated tag v2 on the second."""
    if not shutil.which("git"):
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "--quiet")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    shas = []
    for i in range(3):
        (repo / "file.txt").write_text(f"revision {i}\n")
        _git(repo, "add", "file.txt")
        _git(repo, "commit", "--quiet", "-m", f"commit {i}")
        shas.append(_git(repo, "rev-parse", "HEAD"))
    _git(repo, "tag", "v1", shas[0])
    _git(repo, "tag", "-a", "-m", "second", "v2", shas[1])
    return repo, shas
