import dataclasses
import logging
import os
from collections.abc import Callable, Mapping
from contextlib import ExitStack
from dataclasses import (
    dataclass,
    field,
)
from enum import Enum

from revbuild.exceptions import (
    CheckoutError,
    InputError,
    PackError,
    RepositoryBusyError,
    RestoreError,
    RunCancelledError,
)
from revbuild.models import (
    ArtifactDescriptor,
    FailurePolicy,
    WorkUnit,
    package_name,
)
from revbuild.packaging import Packager
from revbuild.utils import metrics
from revbuild.utils.cancellation import CancellationToken
from revbuild.utils.config import BuildSettings
from revbuild.utils.git import (
    GitError,
    GitRepository,
    Head,
    Repository,
)
from revbuild.utils.lock import RepositoryLock


class SessionState(Enum):
    IDLE = "idle"
    LOCKED = "locked"
    ITERATING = "iterating"
    RESTORING = "restoring"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SessionResult:
    repo_root: str
    artifacts: list[ArtifactDescriptor] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ResolvedUnit:
    project_file: str
    unit: WorkUnit
    commit_sha: str
    requested_ids: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return package_name(self.project_file, self.commit_sha)


class AbortSession(Exception):
    pass


class RepositoryCheckoutSession:
    """Owns one repository working tree for the duration of a run.

    The lock is taken first and released last. The head found after
    locking is restored after every unit has been attempted, whatever
    happened in between. Units are built strictly one after another.
    """

    def __init__(
        self,
        repo_root: str,
        work: Mapping[str, set[WorkUnit]],
        packager: Packager,
        settings: BuildSettings,
        token: CancellationToken,
        repository_factory: Callable[[str], Repository] = GitRepository,
    ):
        self.repo_root = repo_root
        self.work = work
        self.packager = packager
        self.settings = settings
        self.token = token
        self.repository = repository_factory(repo_root)
        self.state = SessionState.IDLE
        self.original_head: Head | None = None

    def run(self) -> SessionResult:
        result = SessionResult(self.repo_root)
        try:
            lock = RepositoryLock.acquire(self.repo_root, self.settings.lock_file_name)
        except RepositoryBusyError as e:
            logging.error(str(e))
            result.errors.append(e)
            self.state = SessionState.FAILED
            return result
        except OSError as e:
            error = CheckoutError(self.repo_root, f"could not create lock file: {e}")
            logging.error(str(error))
            result.errors.append(error)
            self.state = SessionState.FAILED
            return result

        with ExitStack() as defer:
            defer.callback(lock.release)
            self.state = SessionState.LOCKED
            try:
                self.original_head = self.repository.current_head()
                if self.repository.has_uncommited_changes():
                    raise CheckoutError(
                        self.repo_root,
                        "working tree has uncommitted changes to tracked files",
                    )
            except (GitError, CheckoutError) as e:
                error = e if isinstance(e, CheckoutError) else CheckoutError(
                    self.repo_root, e
                )
                logging.error(str(error))
                result.errors.append(error)
                self.state = SessionState.FAILED
                return result

            defer.callback(self._restore, self.original_head, result)
            self.state = SessionState.ITERATING
            try:
                self._iterate(result)
            except Exception as e:
                logging.exception(f"unexpected error in {self.repo_root}: {e}")
                result.errors.append(e)
            self._withhold_partial(result)
        return result

    def _iterate(self, result: SessionResult) -> None:
        try:
            resolved = self._resolve_all()
            for item in resolved:
                if self.token.cancelled:
                    raise RunCancelledError(self.repo_root)
                try:
                    result.artifacts.append(self._build(item))
                except PackError as e:
                    metrics.units.labels("failed").inc()
                    logging.error(str(e))
                    result.errors.append(e)
                    if self.settings.failure_policy == FailurePolicy.FAIL_FAST:
                        raise AbortSession() from e
        except AbortSession:
            pass
        except RunCancelledError as e:
            logging.warning(str(e))
            result.errors.append(e)
        except (CheckoutError, InputError, GitError) as e:
            error = e if isinstance(e, CheckoutError) else CheckoutError(
                self.repo_root, e
            )
            logging.error(str(error))
            result.errors.append(error)
            if isinstance(e, InputError):
                self.token.cancel(str(e))

    def _withhold_partial(self, result: SessionResult) -> None:
        if result.errors and self.settings.failure_policy == FailurePolicy.FAIL_FAST:
            # a partial artifact set is not published
            if result.artifacts:
                logging.warning(
                    f"withholding {len(result.artifacts)} artifact(s) "
                    f"built in {self.repo_root}"
                )
            result.artifacts.clear()

    def _resolve_all(self) -> list[ResolvedUnit]:
        """Resolve every identifier before the first checkout, so a stale
        directive fails the session without touching the working tree."""
        resolved: dict[tuple[str, str], ResolvedUnit] = {}
        for project_file in sorted(self.work):
            units = sorted(
                self.work[project_file],
                key=lambda u: (u.commit_id, u.kind, u.pack_option or ""),
            )
            for unit in units:
                sha = self.repository.resolve(unit.commit_id, unit.kind)
                previous = resolved.get((project_file, sha))
                if previous is None:
                    resolved[(project_file, sha)] = ResolvedUnit(
                        project_file, unit, sha, (unit.commit_id,)
                    )
                    continue
                if previous.unit.pack_option != unit.pack_option:
                    raise CheckoutError(
                        self.repo_root,
                        f"{unit.kind} {unit.commit_id} and {previous.unit.kind} "
                        f"{previous.unit.commit_id} both resolve to {sha} "
                        f"with different pack options for {project_file}",
                    )
                logging.info(
                    f"{unit.kind} {unit.commit_id} resolves to already "
                    f"requested commit {sha}"
                )
                if unit.commit_id not in previous.requested_ids:
                    # each identifier keeps its own alias on the shared package
                    resolved[(project_file, sha)] = dataclasses.replace(
                        previous,
                        requested_ids=(*previous.requested_ids, unit.commit_id),
                    )
        return list(resolved.values())

    def _build(self, item: ResolvedUnit) -> ArtifactDescriptor:
        artifact = ArtifactDescriptor(
            path=self.packager.artifact_path(item.name),
            logical_name=item.name,
            version=self.settings.package_version,
            project_file=item.project_file,
            requested_ids=item.requested_ids,
            commit_sha=item.commit_sha,
        )
        if self.settings.skip_existing and (
            existing := self.packager.find_existing(item.name)
        ):
            logging.info(f"artifact already exists, skipping: {existing}")
            metrics.units.labels("skipped").inc()
            return dataclasses.replace(artifact, path=existing)

        logging.info(f"checking out {item.commit_sha} in {self.repo_root}")
        try:
            self.repository.checkout(Head(ref=item.commit_sha, detached=True))
        except GitError as e:
            raise CheckoutError(self.repo_root, e) from e

        self.packager.prepare(item.project_file, item.name)
        self.packager.pack(item.project_file, item.unit.pack_option)
        if not os.path.exists(artifact.path):
            raise PackError(
                f"packing {item.project_file} at {item.commit_sha} "
                f"did not produce {artifact.path}"
            )
        metrics.units.labels("built").inc()
        logging.info(f"built {artifact.file_name}")
        return artifact

    def _restore(self, head: Head, result: SessionResult) -> None:
        self.state = SessionState.RESTORING
        try:
            self.repository.checkout(head)
        except Exception as e:
            error = RestoreError(self.repo_root, head, e)
            logging.critical(str(error))
            metrics.restore_failures.inc()
            result.errors.append(error)
            self.state = SessionState.FAILED
            return
        logging.info(f"restored {self.repo_root} to {head}")
        self.state = SessionState.FAILED if result.errors else SessionState.DONE
