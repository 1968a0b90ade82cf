from fastapi.testclient import TestClient
from prometheus_client import CONTENT_TYPE_LATEST

from background_jobs.worker.metrics import WorkerMetrics, create_metrics_app


def test_warmup_exposes_series_before_first_task():
    """Test that registered task types appear with zero counters."""
    metrics = WorkerMetrics()
    metrics.warmup_task_types(["email_registration", "cleanup"])

    body, content_type = metrics.render()
    text = body.decode()

    assert content_type == CONTENT_TYPE_LATEST
    for task_type in ("email_registration", "cleanup"):
        assert f'background_jobs_tasks_completed_total{{type="{task_type}"}} 0.0' in text
        assert f'background_jobs_tasks_failed_total{{type="{task_type}"}} 0.0' in text
        assert f'background_jobs_task_invocations_total{{type="{task_type}"}} 0.0' in text
        assert (
            f'background_jobs_task_processing_lag_seconds_count{{type="{task_type}"}} 0.0'
            in text
        )
        assert (
            f'background_jobs_task_duration_seconds_count{{type="{task_type}"}} 0.0'
            in text
        )


def test_histogram_buckets():
    """Test lag and duration bucket boundaries."""
    metrics = WorkerMetrics()
    metrics.record_processing_lag("report", 42.0)
    metrics.record_duration("report", 0.02)

    text = metrics.render()[0].decode()

    assert 'task_processing_lag_seconds_bucket{le="30.0",type="report"} 0.0' in text
    assert 'task_processing_lag_seconds_bucket{le="60.0",type="report"} 1.0' in text
    assert 'task_processing_lag_seconds_bucket{le="600.0",type="report"} 1.0' in text
    assert 'task_duration_seconds_bucket{le="0.01",type="report"} 0.0' in text
    assert 'task_duration_seconds_bucket{le="0.05",type="report"} 1.0' in text


def test_namespace_prefixes_metric_names():
    metrics = WorkerMetrics(namespace="mailer")
    metrics.record_completed("email_registration")

    assert (
        metrics.registry.get_sample_value(
            "mailer_tasks_completed_total", {"type": "email_registration"}
        )
        == 1.0
    )


def test_separate_instances_do_not_share_series():
    """Test that each WorkerMetrics owns its registry."""
    first = WorkerMetrics()
    second = WorkerMetrics()

    first.record_failed("report")

    assert first.registry.get_sample_value(
        "background_jobs_tasks_failed_total", {"type": "report"}
    ) == 1.0
    assert second.registry.get_sample_value(
        "background_jobs_tasks_failed_total", {"type": "report"}
    ) is None


def test_metrics_endpoint_serves_exposition():
    """Test GET /metrics on the worker metrics app."""
    metrics = WorkerMetrics()
    metrics.warmup_task_types(["email_registration"])
    metrics.record_invocation("email_registration")

    with TestClient(create_metrics_app(metrics)) as client:
        response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert (
        'background_jobs_task_invocations_total{type="email_registration"} 1.0'
        in response.text
    )
