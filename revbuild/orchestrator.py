import logging
from collections.abc import Callable, Iterable
from dataclasses import (
    dataclass,
    field,
)

from revbuild import scanner
from revbuild.exceptions import (
    InputError,
    PublishError,
    RestoreError,
    RevisionBuilderError,
)
from revbuild.grouping import (
    count_units,
    group_requests,
)
from revbuild.models import (
    ArtifactDescriptor,
    RevisionRequest,
)
from revbuild.packaging import Packager
from revbuild.publishing import Publisher
from revbuild.session import (
    RepositoryCheckoutSession,
    SessionResult,
)
from revbuild.status import ExitCodes
from revbuild.utils import metrics, threaded
from revbuild.utils.cancellation import CancellationToken
from revbuild.utils.config import BuildSettings
from revbuild.utils.git import (
    GitRepository,
    Repository,
)


@dataclass
class RunResult:
    built: list[ArtifactDescriptor] = field(default_factory=list)
    published: list[ArtifactDescriptor] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def exit_code(self) -> int:
        if any(isinstance(e, RestoreError) for e in self.errors):
            return ExitCodes.RESTORE_FAILED
        if self.errors:
            return ExitCodes.ERROR
        return ExitCodes.SUCCESS


class Orchestrator:
    """Drives a whole run: scan sources for requested revisions, group them
    by repository, run one checkout session per repository concurrently and
    hand every built artifact to the publisher.

    Every error is collected into the RunResult; nothing short of an
    interrupt aborts the run before it reports.
    """

    def __init__(
        self,
        settings: BuildSettings,
        packager: Packager,
        publisher: Publisher | None = None,
        token: CancellationToken | None = None,
        repository_factory: Callable[[str], Repository] = GitRepository,
    ):
        self.settings = settings
        self.packager = packager
        self.publisher = publisher
        self.token = token or CancellationToken()
        self.repository_factory = repository_factory

    def scan(
        self, project_dir: str, default_project: str
    ) -> tuple[list[RevisionRequest], list[Exception]]:
        sources = scanner.find_sources(project_dir)
        logging.info(f"scanning {len(sources)} source file(s) in {project_dir}")
        results = threaded.run(
            scanner.scan_file,
            sources,
            self.settings.thread_pool_size,
            return_exceptions=True,
            project_dir=project_dir,
            default_project=default_project,
            token=self.token,
        )
        found, errors = threaded.split_results(results)
        requests = [r for requests in found for r in requests]
        for e in errors:
            logging.error(str(e))
        return requests, errors

    def execute(self, project_dir: str, default_project: str) -> RunResult:
        requests, errors = self.scan(project_dir, default_project)
        if errors:
            self.token.cancel("errors while scanning for revision directives")
            return RunResult(errors=errors)
        return self.build(requests)

    def build(self, requests: Iterable[RevisionRequest]) -> RunResult:
        result = RunResult()
        try:
            work_set = group_requests(requests)
        except InputError as e:
            logging.error(str(e))
            self.token.cancel(str(e))
            result.errors.append(e)
            return result

        if self.token.cancelled:
            result.errors.append(
                RevisionBuilderError(f"run cancelled: {self.token.reason}")
            )
            return result
        if not work_set:
            logging.info("no revisions requested")
            return result

        logging.info(
            f"building {count_units(work_set)} revision(s) "
            f"in {len(work_set)} repository(ies)"
        )
        sessions = [
            RepositoryCheckoutSession(
                repo_root,
                work,
                self.packager,
                self.settings,
                self.token,
                repository_factory=self.repository_factory,
            )
            for repo_root, work in sorted(work_set.items())
        ]
        session_results = threaded.run(
            run_session,
            sessions,
            self.settings.thread_pool_size,
            return_exceptions=True,
        )
        for r in session_results:
            if isinstance(r, SessionResult):
                result.built.extend(r.artifacts)
                result.errors.extend(r.errors)
            else:
                logging.error(f"session failed unexpectedly: {r}")
                result.errors.append(r)

        self.publish(result)
        return result

    def publish(self, result: RunResult) -> None:
        if self.publisher is None:
            result.published.extend(result.built)
            return
        for artifact in result.built:
            try:
                self.publisher.publish(artifact)
            except PublishError as e:
                logging.error(str(e))
                metrics.publishes.labels("failed").inc()
                result.errors.append(e)
                continue
            metrics.publishes.labels("published").inc()
            result.published.append(artifact)


def run_session(session: RepositoryCheckoutSession) -> SessionResult:
    return session.run()
