"""
Error Handling Utilities

This module provides:
1. A retry decorator with exponential backoff and jitter
2. Conversion of arbitrary exceptions into the engine's error taxonomy
3. An error tracing decorator for storage operations
"""

import time
import logging
import random
import asyncio
import functools
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, cast

from academia.common.exceptions import BaseError, StorageError
from academia.common.logger import app_logger

# Type variables
F = TypeVar('F', bound=Callable)

logger = app_logger.getChild("error_handling")


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected storage failure occurred"
) -> BaseError:
    """
    Convert a standard exception to an engine error.

    Engine errors pass through untouched; anything else becomes a StorageError
    carrying the original exception.

    Args:
        exception: The exception to convert
        default_message: Message used when the exception has none

    Returns:
        Converted error
    """
    if isinstance(exception, BaseError):
        return exception

    message = str(exception) or default_message
    return StorageError(message, original_exception=exception)


def retry(
    max_retries: int = 3,
    retry_delay: float = 0.05,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ignore_exceptions: Tuple[Type[Exception], ...] = (),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Decorator for retrying functions when exceptions occur.

    Args:
        max_retries: Maximum number of retries
        retry_delay: Initial delay between retries in seconds
        backoff_factor: Factor to increase delay with each retry
        jitter: Random jitter factor to add to delay
        retry_exceptions: Tuple of exception types to retry on
        ignore_exceptions: Tuple of exception types to not retry on
        on_retry: Optional callback called before each retry

    Returns:
        Decorated function
    """
    def next_delay(retries: int, delay: float, error: Exception, name: str) -> float:
        actual_delay = delay * (1 + random.uniform(-jitter, jitter))
        if on_retry:
            on_retry(retries, error, actual_delay)
        logger.warning(
            f"Retry {retries}/{max_retries} for {name} "
            f"after {actual_delay:.2f}s due to {type(error).__name__}: {error}"
        )
        return actual_delay

    def decorator(func: F) -> F:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                retries = 0
                delay = retry_delay

                while True:
                    try:
                        return await func(*args, **kwargs)
                    except ignore_exceptions:
                        raise
                    except retry_exceptions as e:
                        retries += 1
                        if retries > max_retries:
                            raise
                        await asyncio.sleep(next_delay(retries, delay, e, func.__name__))
                        delay *= backoff_factor

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            retries = 0
            delay = retry_delay

            while True:
                try:
                    return func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except retry_exceptions as e:
                    retries += 1
                    if retries > max_retries:
                        raise
                    time.sleep(next_delay(retries, delay, e, func.__name__))
                    delay *= backoff_factor

        return cast(F, sync_wrapper)

    return decorator


async def retry_call(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = 3,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    **kwargs: Any
) -> Any:
    """
    Call an async function with the retry policy chosen at call time.

    Useful when the retry budget comes from settings rather than being fixed
    at decoration time.
    """
    wrapped = retry(
        max_retries=max_retries,
        retry_exceptions=retry_exceptions
    )(func)
    return await wrapped(*args, **kwargs)


def trace_errors(
    operation: str,
    capture: Tuple[Type[Exception], ...] = (Exception,),
    log_level: int = logging.ERROR
):
    """
    Decorator for tracing errors in async functions.

    Engine errors propagate unchanged. Exceptions matching ``capture`` are
    logged and re-raised converted (see ``convert_exception``).

    Args:
        operation: Name of the operation being traced
        capture: Exception types to log and convert
        log_level: Logging level for error reports

    Returns:
        Decorated function
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except BaseError:
                raise
            except capture as e:
                logger.log(
                    log_level,
                    f"Error in {operation} ({func.__name__}): {type(e).__name__}: {e}"
                )
                raise convert_exception(e) from e

        return cast(F, async_wrapper)

    return decorator
