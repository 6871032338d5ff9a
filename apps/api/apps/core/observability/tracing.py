"""
Log-based span timing for multi-step operations.
"""
import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@contextmanager
def trace_span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """
    Time a block and log its outcome.

    Usage:
        with trace_span('lab_batch_submit', attributes={'order_count': 12}):
            # ... operation ...
    """
    start_time = time.time()
    logger.debug(
        f'Span started: {name}',
        extra={
            'event': 'span_start',
            'span_name': name,
            'attributes': attributes or {}
        }
    )

    try:
        yield
    except Exception as e:
        logger.error(
            f'Span failed: {name}',
            extra={
                'event': 'span_error',
                'span_name': name,
                'duration_ms': round((time.time() - start_time) * 1000, 2),
                'error_type': e.__class__.__name__,
                'attributes': attributes or {}
            }
        )
        raise
    else:
        logger.debug(
            f'Span completed: {name}',
            extra={
                'event': 'span_complete',
                'span_name': name,
                'duration_ms': round((time.time() - start_time) * 1000, 2),
                'attributes': attributes or {}
            }
        )
