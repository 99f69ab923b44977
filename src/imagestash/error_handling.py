"""
Standardized Error Handling for imagestash
==========================================

Exception hierarchy and logging helpers shared by the index, the storage
backends and the HTTP layer.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional, Type

logger = logging.getLogger(__name__)


class ImageStoreError(Exception):
    """Base exception for all image storage errors."""

    log_level = logging.ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

        context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        logger.log(
            self.log_level,
            f"Image store error: {message}" + (f" ({context_str})" if context_str else ""),
        )


class DuplicateIdentifierError(ImageStoreError):
    """Raised when an identifier is added to an index that already holds it."""

    log_level = logging.DEBUG


class ImageNotFoundError(ImageStoreError):
    """Raised when an identifier is absent from the index or the medium."""

    log_level = logging.DEBUG


class InvalidIdentifierError(ImageStoreError):
    """Raised when an identifier cannot be mapped onto the storage medium."""

    log_level = logging.WARNING


class StorageIOError(ImageStoreError):
    """Raised when reading or writing image bytes fails."""

    pass


class BackendConnectionError(ImageStoreError):
    """Raised when the storage service cannot be reached."""

    pass


class ImageStoreConfigurationError(ImageStoreError):
    """Raised when configuration is invalid."""

    pass


def with_error_handling(
    error_type: Type[ImageStoreError] = StorageIOError,
    context: Optional[Dict[str, Any]] = None,
):
    """
    Decorator converting unexpected exceptions into ``error_type``.

    ``ImageStoreError`` subclasses pass through untouched so that a backend
    can raise a precise error (e.g. not-found) from inside the wrapped call.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ImageStoreError:
                raise
            except Exception as e:
                error_context = (context or {}).copy()
                error_context.update(
                    {
                        "function": func.__name__,
                        "original_error": str(e),
                        "original_error_type": type(e).__name__,
                    }
                )
                raise error_type(f"Error in {func.__name__}: {e}", error_context) from e

        return wrapper

    return decorator


@contextmanager
def storage_operation_context(operation: str, **context):
    """
    Context manager for storage operations with standardized logging.

    Args:
        operation: Description of the operation (e.g. "write")
        **context: Additional context for logging (identifier, backend, ...)
    """
    details = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"Starting storage operation: {operation} ({details})")
    start_time = time.time()

    try:
        yield
    except ImageNotFoundError:
        logger.debug(f"Storage operation found nothing: {operation} ({details})")
        raise
    except ImageStoreError:
        logger.error(f"Storage operation failed: {operation} ({details})")
        raise
    except Exception as e:
        logger.error(f"Unexpected error in storage operation: {operation} ({details}) - {e}")
        raise

    duration = time.time() - start_time
    logger.debug(f"Storage operation completed: {operation} ({duration:.3f}s)")
