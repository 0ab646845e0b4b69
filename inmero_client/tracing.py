"""
Sentry setup and transaction wrapper for console actions.

HTTP spans opened by the transport only reach Sentry when they run inside a
transaction, so every user-facing action is wrapped with `with_sentry_transaction`.
"""

import functools
import logging
from typing import Any, Callable, Optional

import sentry_sdk

from .errors import IncompleteSelection, ValidationError
from .models import ClientConfig

logger = logging.getLogger(__name__)

# Input mistakes, not bugs; never reported
CLIENT_SIDE_ERRORS = (ValidationError, IncompleteSelection)


def init_sentry(config: ClientConfig, traces_sample_rate: float = 1.0) -> bool:
    """Initialise the SDK when a DSN is configured. Returns whether it did."""
    if not config.sentry_dsn:
        logger.debug("SENTRY_DSN not set; Sentry disabled")
        return False
    sentry_sdk.init(dsn=config.sentry_dsn, traces_sample_rate=traces_sample_rate)
    logger.info("Sentry initialised")
    return True


def with_sentry_transaction(name: Optional[str] = None, op: str = "cli") -> Callable:
    """
    Run the wrapped function inside a Sentry transaction.

    Usage:
        @with_sentry_transaction("book")
        def book(client):
            ...
    """

    def decorator(func: Callable) -> Callable:
        transaction_name = name or func.__name__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with sentry_sdk.start_transaction(op=op, name=transaction_name) as transaction:
                transaction.set_tag("action", transaction_name)
                try:
                    result = func(*args, **kwargs)
                except CLIENT_SIDE_ERRORS:
                    transaction.set_status("invalid_argument")
                    raise
                except Exception as e:
                    transaction.set_status("internal_error")
                    sentry_sdk.capture_exception(e)
                    raise
                transaction.set_status("ok")
                return result

        return wrapper

    return decorator
