import logging
import os
from types import TracebackType
from typing import Self

from revbuild.exceptions import RepositoryBusyError
from revbuild.utils.git import git_dir

DEFAULT_LOCK_FILE_NAME = "revbuild.lock"


class RepositoryLock:
    """Exclusive sentinel file inside a repository's git directory.

    The marker is created with O_EXCL, so a second holder fails whether
    it lives in this process or another one. A process killed without
    running release() leaves the marker behind; it has to be removed
    by hand.
    """

    def __init__(self, repo_root: str, lock_file_name: str = DEFAULT_LOCK_FILE_NAME):
        self.repo_root = repo_root
        self.path = os.path.join(git_dir(repo_root), lock_file_name)
        self._held = False

    @classmethod
    def acquire(
        cls, repo_root: str, lock_file_name: str = DEFAULT_LOCK_FILE_NAME
    ) -> Self:
        lock = cls(repo_root, lock_file_name)
        lock.lock()
        return lock

    @property
    def held(self) -> bool:
        return self._held

    def lock(self) -> None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise RepositoryBusyError(self.repo_root, self.path) from None
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()}\n")
        self._held = True
        logging.info(f"acquired lock {self.path}")

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            os.remove(self.path)
        except FileNotFoundError:
            logging.warning(f"lock file {self.path} vanished before release")
            return
        logging.info(f"released lock {self.path}")

    def __enter__(self) -> Self:
        if not self._held:
            self.lock()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()
