"""Running callables with a time limit."""

from concurrent.futures import Executor, TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

T = TypeVar("T")


class CallTimeoutError(Exception):
    """A call did not finish within its time limit."""


def run_with_timeout(executor: Executor, function: Callable[[], T], timeout: float) -> T:
    """
    Run a function on an executor and wait at most `timeout` seconds for its result.

    On timeout the future is cancelled; a call that has already started keeps running in its worker thread, but the caller is released.
    """
    future = executor.submit(function)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as error:
        if future.done():
            # the function itself raised a TimeoutError
            raise
        future.cancel()
        raise CallTimeoutError(f"Call did not finish within {timeout:g}s.") from error
