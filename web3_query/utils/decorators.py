import functools
import time
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger as logging

# Type variable for the decorated coroutine function
C = TypeVar("C", bound=Callable[..., Awaitable[Any]])


def log_execution(enabled: bool = True, level: str = "DEBUG") -> Callable[[C], C]:
    """
    Decorator factory that logs how long a client operation took.

    The first positional argument after `self` is treated as the endpoint and
    included in the log line.

    Args:
        enabled (bool): Flag to enable or disable logging.
        level (str): Loguru level used for the log line.

    Returns:
        Callable: A decorator that wraps the target coroutine method.
    """

    def decorator(func: C) -> C:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            outcome = "failed"
            try:
                result = await func(*args, **kwargs)
                outcome = "completed"
                return result
            finally:
                if enabled:
                    endpoint = _describe_endpoint(args)
                    logging.log(
                        level,
                        f"{func.__qualname__}({endpoint}) {outcome} "
                        f"in {time.perf_counter() - start_time:f} seconds",
                    )

        return wrapper  # type: ignore

    return decorator


def _describe_endpoint(args: tuple) -> str:
    if len(args) < 2:
        return ""
    endpoint = args[1]
    return getattr(endpoint, "path", endpoint) if endpoint is not None else ""
