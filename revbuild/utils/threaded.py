import functools
import logging
import traceback
from collections.abc import Callable, Iterable
from multiprocessing.dummy import Pool as ThreadPool
from typing import Any


def catching_traceback(func: Callable) -> Callable:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logging.debug(f"worker failed: {e}\n\nOriginal {traceback.format_exc()}")
            return e

    return wrapper


def run(
    func: Callable,
    iterable: Iterable[Any],
    thread_pool_size: int,
    return_exceptions: bool = False,
    **kwargs: Any,
) -> list[Any]:
    """run executes a function for each item in the input iterable.
    execution will be multithreaded according to the input
    thread_pool_size. kwargs are passed to the input function
    (optional). If return_exceptions is true, any exceptions that may
    have happened in each thread are returned in the return value
    instead of aborting the map, so every item gets its turn.
    """
    items = list(iterable)
    if not items:
        return []

    if return_exceptions:
        func = catching_traceback(func)
    func_partial = functools.partial(func, **kwargs)

    pool = ThreadPool(max(1, min(thread_pool_size, len(items))))
    try:
        return pool.map(func_partial, items)
    finally:
        pool.close()
        pool.join()


def split_results(results: Iterable[Any]) -> tuple[list[Any], list[Exception]]:
    values: list[Any] = []
    errors: list[Exception] = []
    for r in results:
        if isinstance(r, Exception):
            errors.append(r)
        else:
            values.append(r)
    return values, errors
