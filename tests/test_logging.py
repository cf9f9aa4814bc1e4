import structlog
from structlog.testing import capture_logs

from context_planner.infrastructure.observability.logging import MetricsCollector, PlannerLogger, add_service_context


class TestPlannerLogger:

    def test_plan_event(self):
        planner = PlannerLogger("test")

        with capture_logs() as logs:
            planner.log_plan("s1", ["casual"], None, "off", {"max_facts": 0, "max_tokens": 0, "skip": True})

        assert logs[0]["event"] == "plan_built"
        assert logs[0]["tools"] == "all"
        assert logs[0]["log_level"] == "info"

    def test_skip_event(self):
        with capture_logs() as logs:
            PlannerLogger("test").log_skip("s1", "recall", "policy_skip")

        assert logs[0]["event"] == "recall_skipped"
        assert logs[0]["reason"] == "policy_skip"


class TestServiceContext:

    def test_session_from_contextvars(self):
        structlog.contextvars.bind_contextvars(session_id="s9", trace_id="t1")
        try:
            event = add_service_context(None, "info", {"event": "x"})
        finally:
            structlog.contextvars.unbind_contextvars("session_id", "trace_id")

        assert event["session_id"] == "s9"
        assert event["trace_id"] == "t1"
        assert "timestamp" in event

    def test_explicit_session_wins(self):
        structlog.contextvars.bind_contextvars(session_id="s9")
        try:
            event = add_service_context(None, "info", {"event": "x", "session_id": "s1"})
        finally:
            structlog.contextvars.unbind_contextvars("session_id")

        assert event["session_id"] == "s1"


class TestMetricsCollector:

    def test_summary(self):
        metrics = MetricsCollector()
        metrics.record_latency("hybrid_search", 10.0)
        metrics.record_latency("hybrid_search", 30.0)
        metrics.increment_counter("recall.failures")
        metrics.increment_counter("recall.failures")

        summary = metrics.get_metrics_summary()

        assert summary["latency.hybrid_search"] == {"count": 2, "avg": 20.0, "min": 10.0, "max": 30.0}
        assert summary["recall.failures"] == 2

    def test_collectors_are_independent(self):
        first, second = MetricsCollector(), MetricsCollector()
        first.increment_counter("turns.planned")

        assert second.get_metrics_summary() == {}
