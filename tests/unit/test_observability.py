from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from opentelemetry import trace

from assemblyvote.obs import (
    QUEUE_DEPTH_GAUGE,
    PrometheusMiddleware,
    core_span,
    initialise_tracing,
    inject_traceparent,
    mask_payload,
    metrics_router,
    report_queue_depth,
    span_from_traceparent,
)
from assemblyvote.workers.observability import worker_span


def test_metrics_endpoint_exposes_counters() -> None:
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware)
    app.include_router(metrics_router)

    client = TestClient(app)
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "ballots_cast_total" in response.text


def test_report_queue_depth_updates_gauge() -> None:
    report_queue_depth("assembly-events", 7)
    sample_family = next(iter(QUEUE_DEPTH_GAUGE.collect()))
    sample = next(
        item for item in sample_family.samples if item.labels["queue_name"] == "assembly-events"
    )
    assert sample.value == 7


def test_worker_span_continues_producer_trace() -> None:
    initialise_tracing(service_name="unit-test-service", instrument_logging=False)
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span("ballot.cast"):
        carrier = inject_traceparent({})
        parent_trace_id = trace.get_current_span().get_span_context().trace_id
    traceparent = carrier.get("traceparent")
    assert traceparent is not None

    with worker_span("tally_feed.apply", traceparent, vote_id="vote-1") as span:
        assert span.get_span_context().trace_id == parent_trace_id

    with span_from_traceparent("child", traceparent) as span:
        assert span.get_span_context().trace_id == parent_trace_id


def test_core_span_accepts_missing_attributes() -> None:
    with core_span("vote.cast", vote_id="vote-1", on_behalf=None) as span:
        assert span is trace.get_current_span()


def test_mask_payload_hides_secrets_and_personal_data() -> None:
    masked = mask_payload(
        {
            "document": "1020304050",
            "password": "1020304050",
            "code": "123456",
            "email": "alice@example.com",
            "representative": "1002",
            "nested": [{"refresh_token": "abc", "phone": "3001112233"}],
            "title": "Approve the budget",
        }
    )

    assert masked == {
        "document": "***4050",
        "password": "***",
        "code": "***",
        "email": "a***@example.com",
        "representative": "***",
        "nested": [{"refresh_token": "***", "phone": "***2233"}],
        "title": "Approve the budget",
    }
