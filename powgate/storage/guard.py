"""Translate backend faults into ``StorageUnavailable``."""

import functools
from collections.abc import Callable
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from powgate.exceptions import StorageUnavailable

logger = structlog.get_logger(__name__)


def storage_guard(operation: str) -> Callable[..., Any]:
    """Decorator for async store methods: re-raise driver errors as StorageUnavailable."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except (SQLAlchemyError, OSError, TimeoutError) as exc:
                logger.error("storage_unavailable", operation=operation, error=str(exc))
                raise StorageUnavailable(f"{operation} failed") from exc

        return wrapper

    return decorator
