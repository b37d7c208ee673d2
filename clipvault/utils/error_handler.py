import asyncio
import functools
from typing import TypeVar, Callable, Any, Optional, Type, Union
from loguru import logger
from ..exceptions import (
    ClipVaultException,
    ProviderException,
    ConfigurationException,
)

__all__ = [
    "handle_exceptions",
    "log_exceptions",
    "convert_exceptions",
    "ErrorHandler",
    "ClipVaultException",
    "ProviderException",
    "ConfigurationException",
]

T = TypeVar('T')


def handle_exceptions(
    retries: int = 3,
    fallback: Any = None,
    exceptions: Union[Type[Exception], tuple] = Exception,
    backoff_factor: float = 2.0,
    max_delay: float = 60.0
):
    """
    Decorator for coroutines: retry with exponential backoff, then fall back or re-raise.

    Args:
        retries: Number of attempts before giving up
        fallback: Fallback value to return if all attempts fail
        exceptions: Exception types to catch and retry
        backoff_factor: Exponential backoff factor
        max_delay: Maximum delay between retries
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(retries):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < retries - 1:
                        delay = min(backoff_factor ** attempt, max_delay)
                        logger.warning(f"Attempt {attempt + 1} of {func.__name__} failed: {e}. Retrying in {delay}s...")
                        await asyncio.sleep(delay)
                    else:
                        logger.error(f"All {retries} attempts of {func.__name__} failed: {e}")

            if fallback is not None:
                logger.info(f"Returning fallback value: {fallback}")
                return fallback

            raise last_exception

        return wrapper

    return decorator


def log_exceptions(
    log_level: str = "ERROR",
    include_traceback: bool = True,
    custom_message: Optional[str] = None
):
    """
    Decorator for coroutines: log exceptions before re-raising them.

    Args:
        log_level: Log level for exception logging
        include_traceback: Whether to include traceback in log
        custom_message: Custom message to include in log
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                message = custom_message or f"Exception in {func.__name__}"
                if include_traceback:
                    logger.opt(exception=True).log(log_level, f"{message}: {e}")
                else:
                    logger.log(log_level, f"{message}: {e}")
                raise

        return wrapper

    return decorator


def convert_exceptions(exception_map: dict):
    """
    Decorator for coroutines: convert foreign exceptions to ClipVault exceptions.

    ClipVault exceptions pass through untouched so that a more specific error
    raised inside the wrapped call is not flattened.

    Args:
        exception_map: Dictionary mapping exception types to ClipVault exception types
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except ClipVaultException:
                raise
            except Exception as e:
                for source_exc, target_exc in exception_map.items():
                    if isinstance(e, source_exc):
                        raise target_exc(str(e), details={"original_exception": type(e).__name__}) from e
                raise

        return wrapper

    return decorator


class ErrorHandler:
    """Centralized error handling utilities."""

    @staticmethod
    def handle_provider_error(e: Exception, provider_name: str) -> ProviderException:
        """Convert provider-specific exceptions to ProviderException."""
        error_details = {
            "provider": provider_name,
            "original_exception": type(e).__name__,
            "message": str(e)
        }

        logger.error(f"Provider {provider_name} error: {e}")
        return ProviderException(
            f"Provider {provider_name} failed: {e}",
            error_code="PROVIDER_ERROR",
            details=error_details
        )

    @staticmethod
    def wrap(e: Exception, target: Type[ClipVaultException], context: str, **details) -> ClipVaultException:
        """Return ``e`` unchanged if it is already a ClipVault error, else wrap it in ``target``."""
        if isinstance(e, ClipVaultException):
            return e
        details.setdefault("original_exception", type(e).__name__)
        return target(f"{context}: {e}", details=details)
