import logging
from functools import wraps

from django.conf import settings

from .errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)


def _conflict_retries() -> int:
    return max(0, int(getattr(settings, 'LEDGER_CONFLICT_RETRIES', 1)))


def retry_on_conflict(func):
    """Re-run the whole operation when a concurrent writer won the race."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        attempts = _conflict_retries() + 1
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except ConcurrencyConflictError:
                if attempt == attempts:
                    raise
                logger.info('Retrying %s after concurrent update (attempt %s)', func.__name__, attempt + 1)

    return wrapper
