from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import CollectorRegistry, Counter, Histogram

from userapi.monitoring.metrics.http_metrics import (
    MetricsRecorder,
    status_code_for_error,
)
from userapi.monitoring.paths import UNMATCHED_PATH, ExclusionSet, RequestDescriptor
from userapi.utils.exceptions import ConflictError, NotFoundError


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def recorder(registry: CollectorRegistry) -> MetricsRecorder:
    labels = ["method", "path", "statusCode"]
    return MetricsRecorder(
        ExclusionSet(["/health", "/metrics"]),
        requests_total=Counter(
            "http_requests_total", "test", labels, registry=registry
        ),
        request_duration=Histogram(
            "http_request_duration_seconds",
            "test",
            labels,
            buckets=[0.01, 0.05, 0.1, 0.5, 1, 2, 5],
            registry=registry,
        ),
    )


def _count(registry, path="/users/:id", status="200", method="GET"):
    labels = {"method": method, "path": path, "statusCode": status}
    return (
        registry.get_sample_value("http_requests_total", labels) or 0.0,
        registry.get_sample_value("http_request_duration_seconds_count", labels)
        or 0.0,
    )


def _descriptor(path="/users/:id", method="GET") -> RequestDescriptor:
    return RequestDescriptor(method=method, raw_path=path, normalized_path=path)


def test_success_records_one_increment_and_one_observation(recorder, registry):
    start = recorder.on_request_start()
    recorder.on_request_success(_descriptor(), 200, start)
    assert _count(registry) == (1.0, 1.0)
    assert registry.get_sample_value(
        "http_request_duration_seconds_bucket",
        {"method": "GET", "path": "/users/:id", "statusCode": "200", "le": "5.0"},
    ) == 1.0


@pytest.mark.parametrize("path", ["/health", "/health/live", "/metrics"])
def test_excluded_paths_record_nothing(recorder, registry, path):
    start = recorder.on_request_start()
    recorder.on_request_success(_descriptor(path), 200, start)
    recorder.on_request_error(_descriptor(path), RuntimeError("x"), start)
    assert registry.get_sample_value(
        "http_requests_total", {"method": "GET", "path": path, "statusCode": "200"}
    ) is None
    assert registry.get_sample_value(
        "http_requests_total", {"method": "GET", "path": path, "statusCode": "500"}
    ) is None


def test_undeclared_error_is_recorded_as_500(recorder, registry):
    start = recorder.on_request_start()
    recorder.on_request_error(_descriptor("/users", "POST"), ValueError("x"), start)
    assert _count(registry, "/users", "500", "POST") == (1.0, 1.0)


def test_declared_error_status_is_used(recorder, registry):
    start = recorder.on_request_start()
    recorder.on_request_error(_descriptor(), NotFoundError("User", 42), start)
    assert _count(registry, status="404") == (1.0, 1.0)


def test_out_of_range_status_is_clamped_to_500(recorder, registry):
    start = recorder.on_request_start()
    recorder.on_request_success(_descriptor(), 42, start)
    assert _count(registry, status="500") == (1.0, 1.0)


@pytest.mark.parametrize(
    "error,expected",
    [
        (RuntimeError("boom"), 500),
        (ConflictError("User", "email", "a@b.io"), 409),
        (type("Weird", (Exception,), {"status_code": "nope"})(), 500),
        (type("Redirect", (Exception,), {"status_code": 302})(), 500),
        (type("Gateway", (Exception,), {"status_code": 502})(), 502),
    ],
)
def test_status_code_for_error(error, expected):
    assert status_code_for_error(error) == expected


def test_backend_failure_is_swallowed_and_logged():
    broken = MagicMock()
    broken.labels.side_effect = RuntimeError("registry on fire")
    recorder = MetricsRecorder(
        ExclusionSet([]), requests_total=broken, request_duration=broken
    )
    with patch("userapi.monitoring.metrics.http_metrics.logger") as logger:
        recorder.on_request_success(_descriptor(), 200, recorder.on_request_start())
        recorder.on_request_error(
            _descriptor(), RuntimeError("x"), recorder.on_request_start()
        )
    assert logger.error.call_count == 2


def test_status_actually_sent_wins_over_error_attribute(recorder, registry):
    error = type("LibraryError", (Exception,), {"status_code": 404})()
    start = recorder.on_request_start()
    recorder.on_request_error(_descriptor(), error, start, status_code=500)
    assert _count(registry, status="500") == (1.0, 1.0)
    assert _count(registry, status="404") == (0.0, 0.0)


def test_unmatched_requests_share_one_series(recorder, registry):
    for i in range(5):
        raw = f"/scan-{i}/wp-admin"
        descriptor = RequestDescriptor(
            method="GET", raw_path=raw, normalized_path=raw, matched=False
        )
        recorder.on_request_success(descriptor, 404, recorder.on_request_start())

    paths = {
        sample.labels["path"]
        for metric in registry.collect()
        if metric.name == "http_requests"
        for sample in metric.samples
        if sample.name == "http_requests_total"
    }
    assert paths == {UNMATCHED_PATH}
    assert _count(registry, UNMATCHED_PATH, "404") == (5.0, 5.0)


def test_unmatched_excluded_path_is_still_skipped(recorder, registry):
    descriptor = RequestDescriptor(
        method="GET", raw_path="/health/deep", normalized_path="/health/deep", matched=False
    )
    recorder.on_request_success(descriptor, 404, recorder.on_request_start())
    assert _count(registry, UNMATCHED_PATH, "404") == (0.0, 0.0)
