"""Retry decorator for flaky filesystem operations."""
import time
import functools

from .logger import get_logger

logger = get_logger()

# Windows reports a file held open by another program (spreadsheet, indexer,
# antivirus) as PermissionError on replace.
RETRYABLE_ERRORS = (
    PermissionError,
)


def retry_with_backoff(max_retries=5, initial_delay=0.2, backoff_factor=2, retryable_exceptions=RETRYABLE_ERRORS):
    """Decorator for exponential backoff retries."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None
            
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e
                    
                    if attempt == max_retries:
                        break
                    
                    wait_time = initial_delay * (backoff_factor ** attempt)
                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt + 1}): {e}. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    time.sleep(wait_time)
            
            logger.error(f"Permanently failed {func.__name__} after {max_retries} retries.")
            raise last_exception
        return wrapper
    return decorator
