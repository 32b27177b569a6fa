from unittest.mock import patch, MagicMock

import credverify.observability.metrics as metrics
from credverify.observability.logging import log


@patch("credverify.observability.metrics.settings")
@patch("credverify.observability.metrics.get_redis")
def test_recorders_are_noop_when_disabled(mock_get_redis, mock_settings):
    mock_settings.METRICS_ENABLED = False
    metrics.increment_poll()
    metrics.record_poll_latency(12)
    mock_get_redis.assert_not_called()
    assert metrics.get_snapshot() == {"enabled": False}


@patch("credverify.observability.metrics.settings")
@patch("credverify.observability.metrics.get_redis")
def test_recorders_write_counters(mock_get_redis, mock_settings):
    mock_settings.METRICS_ENABLED = True
    r = MagicMock()
    mock_get_redis.return_value = r

    metrics.increment_terminal("VERIFIED")
    metrics.record_poll_latency(40)

    r.incr.assert_called_with("metrics:verify:terminal:VERIFIED", 1)
    r.lpush.assert_called_with(metrics.K_POLL_LAT, 40)
    r.ltrim.assert_called_once()


@patch("credverify.observability.metrics.settings")
@patch("credverify.observability.metrics.get_redis")
def test_redis_failure_is_swallowed(mock_get_redis, mock_settings):
    mock_settings.METRICS_ENABLED = True
    mock_get_redis.return_value.incr.side_effect = ConnectionError("redis down")
    metrics.increment_malformed()


@patch("credverify.observability.metrics.settings")
@patch("credverify.observability.metrics.get_redis")
def test_snapshot(mock_get_redis, mock_settings):
    mock_settings.METRICS_ENABLED = True
    r = MagicMock()
    mock_get_redis.return_value = r
    r.get.side_effect = lambda k: "7" if k == metrics.K_POLLS else None
    r.lrange.return_value = ["100", "200", "300", "400"]

    snap = metrics.get_snapshot()

    assert snap["polls"] == 7
    assert snap["terminal"]["TIMED_OUT"] == 0
    assert snap["p50_poll_latency"] == 0.2
    assert snap["p95_poll_latency"] == 0.4


@patch("credverify.observability.logging.settings")
def test_log_redacts_sensitive_fields(mock_settings, capsys):
    mock_settings.ENABLE_PII_REDACTION = True
    log(event="poll_malformed_payload", rawFragment="name=alice", sessionId="s1")
    out = capsys.readouterr().out
    assert "alice" not in out
    assert '"sessionId": "s1"' in out
