import logging

from verifyhub.observability.metrics import MetricsReporter


def _metric_records(caplog):
    return [record.metrics for record in caplog.records if record.getMessage() == "verification.metric"]


def test_stdout_backend_logs_namespaced_metric(caplog):
    reporter = MetricsReporter(namespace="verification", backend="stdout", disabled=False)

    with caplog.at_level(logging.INFO, logger="verifyhub.metrics"):
        reporter.increment("lane.outcome", tags={"network": "base", "status": "success"})

    (payload,) = _metric_records(caplog)
    assert payload["metric"] == "verification.lane.outcome"
    assert payload["type"] == "counter"
    assert payload["tags"] == {"network": "base", "status": "success"}


def test_already_qualified_names_are_not_prefixed_twice(caplog):
    reporter = MetricsReporter(namespace="verification", backend="stdout", disabled=False)

    with caplog.at_level(logging.INFO, logger="verifyhub.metrics"):
        reporter.timing("verification.lane.latency_ms", 12.5)

    assert _metric_records(caplog)[0]["metric"] == "verification.lane.latency_ms"


def test_disabled_reporter_emits_nothing(caplog):
    reporter = MetricsReporter(disabled=True)

    with caplog.at_level(logging.INFO, logger="verifyhub.metrics"):
        reporter.gauge("lane.inflight", 3)

    assert _metric_records(caplog) == []
