import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)

# only for work started outside a request; shut down from the app lifespan
_executor: Optional[ThreadPoolExecutor] = None


def _default_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="fire-and-forget")
    return _executor


def shutdown_background_pool(wait: bool = True) -> None:
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=wait)
        _executor = None


def _log_failure(name: str):
    def _done(future: Future):
        exc = future.exception()
        if exc is not None:
            logger.error(f"Background task {name} failed: {exc!r}", exc_info=exc)
    return _done


def _logged(fn: Callable, name: str) -> Callable:
    def run(*args, **kwargs):
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            logger.error(f"Background task {name} failed: {exc!r}", exc_info=exc)
    return run


def fire_and_forget(fn: Callable, *args, background_tasks: Optional[BackgroundTasks] = None,
                    executor=None, **kwargs) -> Optional[Future]:
    """
    Run ``fn`` detached from the caller.

    Inside a request pass the request's ``BackgroundTasks``: the work runs
    after the response is sent. Otherwise it goes to ``executor`` or the
    shared pool. Either way the caller never sees its exceptions; failures
    are logged and dropped. A future is returned only for executor work.
    """
    name = getattr(fn, "__name__", repr(fn))
    if background_tasks is not None and executor is None:
        background_tasks.add_task(_logged(fn, name), *args, **kwargs)
        return None

    future = (executor or _default_executor()).submit(fn, *args, **kwargs)
    future.add_done_callback(_log_failure(name))
    return future
