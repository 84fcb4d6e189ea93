from typing import Any


class RevisionBuilderError(Exception):
    pass


class InputError(RevisionBuilderError):
    pass


class MalformedDirectiveError(InputError):
    def __init__(self, path: str, line: int, msg: Any) -> None:
        super().__init__(f"malformed directive in {path}:{line}: {msg}")
        self.path = path
        self.line = line


class RepositoryNotFoundError(InputError):
    def __init__(self, path: Any) -> None:
        super().__init__(f"no git repository owns path: {path}")


class ProjectNotFoundError(InputError):
    def __init__(self, locator: Any) -> None:
        super().__init__(f"no project file found for: {locator}")


class UnresolvableRevisionError(InputError):
    pass


class InvalidRevisionKindError(InputError, ValueError):
    def __init__(self, text: Any) -> None:
        super().__init__(
            f"invalid revision kind {text!r}, expected one of: branch, tag, commit"
        )


class ConcurrencyError(RevisionBuilderError):
    pass


class RepositoryBusyError(ConcurrencyError):
    def __init__(self, repo_root: str, lock_path: str) -> None:
        super().__init__(
            f"repository is busy: {repo_root} (lock file {lock_path} exists, "
            "remove it manually if no other run is active)"
        )
        self.repo_root = repo_root
        self.lock_path = lock_path


class CheckoutError(RevisionBuilderError):
    def __init__(self, repo_root: str, msg: Any) -> None:
        super().__init__(f"checkout error in {repo_root}: {msg}")
        self.repo_root = repo_root


class RunCancelledError(CheckoutError):
    def __init__(self, repo_root: str) -> None:
        super().__init__(repo_root, "run cancelled before all revisions were built")


class BuildError(RevisionBuilderError):
    pass


class PackError(BuildError):
    pass


class RestoreError(RevisionBuilderError):
    def __init__(self, repo_root: str, head: Any, msg: Any) -> None:
        super().__init__(
            f"FATAL: could not restore {repo_root} to {head}, "
            f"the working tree is left on another revision: {msg}"
        )
        self.repo_root = repo_root


class PublishError(RevisionBuilderError):
    pass


class RegistrationError(RevisionBuilderError):
    pass
