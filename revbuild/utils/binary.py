import shutil
from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any


class MissingBinaryError(Exception):
    pass


def check_binaries(binaries: Iterable[str]) -> None:
    for b in binaries:
        if not shutil.which(b):
            raise MissingBinaryError(
                f"Aborting: Could not find binary: {b}. "
                + f"Hint: https://command-not-found.com/{b}"
            )


def binary(binaries: Iterable[str] | None = None) -> Callable:
    """Check that a binary exists before execution."""
    if binaries is None:
        binaries = []

    def deco_binary(f: Callable) -> Callable:
        @wraps(f)
        def f_binary(*args: Any, **kwargs: Any) -> Any:
            check_binaries(binaries)
            return f(*args, **kwargs)

        return f_binary

    return deco_binary
