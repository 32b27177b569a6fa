import pytest
from unittest.mock import patch

from credverify.queue.jobs import deliver_notification_job

PAYLOAD = {"sessionId": "s1", "state": "VERIFIED", "identity": "alice"}


@patch("credverify.queue.jobs.log")
@patch("credverify.queue.jobs.settings")
def test_job_skips_without_url(mock_settings, mock_log):
    mock_settings.NOTIFY_WEBHOOK_URL = ""
    assert deliver_notification_job(PAYLOAD) is False
    assert mock_log.call_args.kwargs["event"] == "notification_job_skipped_no_url"


@patch("credverify.queue.jobs.post_json", return_value=(True, 200, None))
@patch("credverify.queue.jobs.settings")
def test_job_posts_with_idempotency_key(mock_settings, mock_post):
    mock_settings.NOTIFY_WEBHOOK_URL = "http://hook.test/n"
    mock_settings.NOTIFY_TIMEOUT_SEC = 5

    assert deliver_notification_job(PAYLOAD) is True
    assert mock_post.call_args.kwargs["headers"] == {"Idempotency-Key": "s1:VERIFIED"}


@patch("credverify.queue.jobs.post_json", return_value=(False, 502, "HTTP 502"))
@patch("credverify.queue.jobs.settings")
def test_job_raises_so_rq_retries(mock_settings, mock_post):
    mock_settings.NOTIFY_WEBHOOK_URL = "http://hook.test/n"
    mock_settings.NOTIFY_TIMEOUT_SEC = 5

    with pytest.raises(RuntimeError):
        deliver_notification_job(PAYLOAD)
