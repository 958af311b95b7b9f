"""
Core metrics and monitoring decorators for the memo classifier.

This module defines Prometheus metrics and decorators for tracking:
- Classification outcomes (assistant vs. fallback) and fallback reasons
- Session lifecycle (created, invalidated) and durable-store errors
- Turn latency and run polling time
- Assistant API latency per operation
"""

import time
import functools
import logging
from typing import Optional, Callable
from prometheus_client import Counter, Histogram

# Configure logger
logger = logging.getLogger(__name__)

CLASSIFICATION_COUNT = Counter(
    'classifications_total',
    'Total number of classification calls',
    ['source']  # 'assistant' or 'fallback'
)

FALLBACK_COUNT = Counter(
    'classification_fallbacks_total',
    'Classification calls answered by the local fallback',
    ['reason']  # e.g. 'session_creation_failed', 'timeout', 'parse_error'
)

SESSION_EVENTS = Counter(
    'assistant_sessions_total',
    'Session lifecycle events',
    ['event']  # 'created', 'reused', 'invalidated', 'pruned'
)

STORE_ERRORS = Counter(
    'thread_store_errors_total',
    'Best-effort thread store operations that failed',
    ['operation']
)

# Error metrics
ERROR_COUNT = Counter(
    'error_total',
    'Total number of errors',
    ['type', 'location']  # type: e.g., 'http', 'turn'; location: specific component
)

TURN_PROCESSING_TIME = Histogram(
    'classification_turn_duration_seconds',
    'Time spent in one classification call, fallback included',
    ['strategy'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")]
)

RUN_POLL_TIME = Histogram(
    'assistant_run_poll_duration_seconds',
    'Time between run submission and a terminal status',
    ['status'],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, float("inf")]
)

# External API metrics
ASSISTANT_REQUEST_TIME = Histogram(
    'assistant_request_duration_seconds',
    'Time spent waiting for the assistant API',
    ['operation'],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, float("inf")]
)

def track_latency(metric: Histogram, labels: Optional[Callable] = None) -> Callable:
    """
    A decorator factory that tracks the execution time of a function using a Prometheus Histogram.

    Args:
        metric (Histogram): The Prometheus Histogram to record the timing in
        labels (Callable, optional): Function that returns metric labels dictionary

    Returns:
        Callable: The decorated function
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                return result
            finally:
                duration = time.time() - start_time
                if labels and args:
                    # For instance methods, first arg is 'self'
                    label_dict = labels(args[0])
                    metric.labels(**label_dict).observe(duration)
                else:
                    metric.observe(duration)

                # Log timing information at debug level
                func_name = func.__name__
                logger.debug(
                    f"Function {func_name} execution time: {duration:.2f} seconds",
                    extra={'duration': duration}
                )
        return wrapper
    return decorator

def track_errors(error_type: str, location: str) -> Callable:
    """
    A decorator factory that tracks errors occurring in a function.

    Args:
        error_type (str): Type of error (e.g., 'http', 'turn')
        location (str): Where the error occurred

    Returns:
        Callable: The decorated function

    Example:
        @track_errors('http', 'classify')
        def classify_endpoint(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                ERROR_COUNT.labels(
                    type=error_type,
                    location=location
                ).inc()

                logger.error(
                    f"Error in {location} ({error_type}): {str(e)}",
                    extra={'extra_fields': {'error_type': error_type, 'location': location}},
                    exc_info=True
                )
                raise  # Re-raise the exception after tracking
        return wrapper
    return decorator
