import pytest

from tidy.observability.telemetry import counter, get_counter, get_latency_stats, time_block


def test_counter_increments():
    counter("analysis.retry")
    assert counter("analysis.retry", 2) == 3
    assert get_counter("analysis.retry") == 3
    assert get_counter("never.seen") == 0


def test_time_block_records_even_on_error():
    with pytest.raises(ValueError):
        with time_block("llm.gateway.latency"):
            raise ValueError("boom")
    with time_block("llm.gateway.latency"):
        pass

    stats = get_latency_stats("llm.gateway.latency")
    assert stats["count"] == 2
    assert stats["min"] <= stats["avg"] <= stats["max"]
    assert get_latency_stats("missing")["count"] == 0
