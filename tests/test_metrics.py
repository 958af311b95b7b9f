"""
Tests for the monitoring decorators in `monitoring/metrics.py`.

Metric values are read back through the default Prometheus registry.
"""

import pytest
from prometheus_client import REGISTRY

from monitoring.metrics import TURN_PROCESSING_TIME, track_errors, track_latency


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_track_errors_counts_and_reraises():
    @track_errors('turn', 'unit_test')
    def explode():
        raise RuntimeError("boom")

    before = _sample('error_total', {'type': 'turn', 'location': 'unit_test'})
    with pytest.raises(RuntimeError):
        explode()
    assert _sample('error_total', {'type': 'turn', 'location': 'unit_test'}) == before + 1


def test_track_latency_observes_with_instance_labels():
    class Worker:
        label = 'unit_test'

        @track_latency(TURN_PROCESSING_TIME, labels=lambda self: {'strategy': self.label})
        def work(self):
            return 42

    labels = {'strategy': 'unit_test'}
    before = _sample('classification_turn_duration_seconds_count', labels)
    assert Worker().work() == 42
    assert _sample('classification_turn_duration_seconds_count', labels) == before + 1
