from collections import defaultdict
from collections.abc import Callable, Iterable

from revbuild.exceptions import InputError
from revbuild.models import (
    RepositoryWorkSet,
    RevisionRequest,
    WorkUnit,
)
from revbuild.utils import git, msbuild


def group_requests(
    requests: Iterable[RevisionRequest],
    discover: Callable[[str], str] = git.discover,
    find_project: Callable[[str], str] = msbuild.find_project_file,
) -> RepositoryWorkSet:
    """Bucket requests by owning repository root, then by project file.

    Identical (revision, option) pairs for one project coalesce into a
    single unit. Every request lands in exactly one bucket; a request
    whose project or repository cannot be found raises an InputError.
    """
    work_set: defaultdict[str, defaultdict[str, set[WorkUnit]]] = defaultdict(
        lambda: defaultdict(set)
    )
    for request in requests:
        if not request.commit_id or not request.commit_id.strip():
            raise InputError(
                f"blank revision identifier requested for {request.project_locator}"
            )
        project_file = find_project(request.project_locator)
        repo_root = discover(project_file)
        work_set[repo_root][project_file].add(
            WorkUnit(
                commit_id=request.commit_id.strip(),
                pack_option=request.pack_option,
                kind=request.kind,
            )
        )
    return {root: dict(projects) for root, projects in work_set.items()}


def count_units(work_set: RepositoryWorkSet) -> int:
    return sum(
        len(units) for projects in work_set.values() for units in projects.values()
    )
