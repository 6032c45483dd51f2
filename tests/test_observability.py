import pytest

from worker.observability import RouteDecisionRecord


def make_record(**overrides):
    fields = dict(
        request_id="req-1",
        method="GET",
        url="http://app.test/a.css",
        kind="static",
        rule="extension",
        strategy="cache_first",
        outcome="cache",
        latency_ms_total=1.5,
        version="1",
        status=200,
    )
    fields.update(overrides)
    return RouteDecisionRecord(**fields)


def test_route_decision_schema_roundtrip():
    payload = make_record().to_dict()

    assert payload["strategy"] == "cache_first"
    assert payload["outcome"] == "cache"
    assert payload["error"] is None


def test_error_outcome_allows_missing_status():
    payload = make_record(outcome="error", status=None, error="offline").to_dict()

    assert payload["status"] is None
    assert payload["error"] == "offline"


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError):
        make_record(strategy="cache_only").to_dict()
