"""
Monitoring package initializer.

This package exposes Prometheus metrics and helper decorators for tracking the
classification core's outcomes, session lifecycle and assistant latency.
"""

from .metrics import (
    CLASSIFICATION_COUNT,
    FALLBACK_COUNT,
    SESSION_EVENTS,
    STORE_ERRORS,
    ERROR_COUNT,
    TURN_PROCESSING_TIME,
    RUN_POLL_TIME,
    ASSISTANT_REQUEST_TIME,
    track_latency,
    track_errors,
)

__all__ = [
    'CLASSIFICATION_COUNT',
    'FALLBACK_COUNT',
    'SESSION_EVENTS',
    'STORE_ERRORS',
    'ERROR_COUNT',
    'TURN_PROCESSING_TIME',
    'RUN_POLL_TIME',
    'ASSISTANT_REQUEST_TIME',
    'track_latency',
    'track_errors',
]
