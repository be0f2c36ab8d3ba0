"""Tests for project plumbing: engine settings, correlation ids, alerting, system checks."""

import asyncio
import logging
from unittest.mock import patch

import pytest
import requests

from config.alerting import send_alert
from config.checks import check_required_settings
from config.logging_filters import (
    CorrelationIdFilter,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)
from contacts.conf import get_sync_setting


class TestSyncSettings:

    def test_override_from_settings(self):
        assert get_sync_setting("LOOKUP_TIMEOUT_SECONDS") == 0.5

    def test_default_when_not_overridden(self, settings):
        settings.CONTACT_SYNC = {}
        assert get_sync_setting("DEFAULT_DAYS_BACK") == 30

    def test_unknown_setting(self):
        with pytest.raises(KeyError):
            get_sync_setting("NOT_A_SETTING")


class TestCorrelationId:

    def test_scope_sets_and_restores(self):
        set_correlation_id("outer")
        with correlation_scope("sync") as cid:
            assert cid.startswith("sync-")
            assert get_correlation_id() == cid
        assert get_correlation_id() == "outer"
        set_correlation_id("")

    def test_follows_asyncio_tasks(self):
        async def child():
            return get_correlation_id()

        async def main():
            with correlation_scope("job") as cid:
                seen = await asyncio.gather(child(), child())
            return cid, seen

        cid, seen = asyncio.run(main())
        assert seen == [cid, cid]

    def test_filter_stamps_records(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        with correlation_scope("sync") as cid:
            assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == cid


class TestAlerting:

    @patch("config.alerting.requests.post")
    def test_log_only_without_webhook(self, mock_post, settings):
        settings.SLACK_WEBHOOK_URL = ""
        send_alert("warning", "Sync job failed", "job=1")
        mock_post.assert_not_called()

    @patch("config.alerting.requests.post")
    def test_posts_to_webhook(self, mock_post, settings):
        settings.SLACK_WEBHOOK_URL = "https://hooks.slack.test/T000/B000"
        send_alert("critical", "Scheduled contact sync had failures", "2/2 jobs failed")
        url = mock_post.call_args.args[0]
        payload = mock_post.call_args.kwargs["json"]
        assert url == "https://hooks.slack.test/T000/B000"
        assert ":red_circle:" in payload["text"]
        assert "2/2 jobs failed" in payload["text"]

    @patch("config.alerting.requests.post", side_effect=requests.ConnectionError("down"))
    def test_webhook_failure_does_not_raise(self, mock_post, settings):
        settings.SLACK_WEBHOOK_URL = "https://hooks.slack.test/T000/B000"
        send_alert("info", "hello")
        assert mock_post.called


class TestSystemChecks:

    def test_missing_maps_key_warns(self, settings):
        settings.GOOGLE_MAPS_API_KEY = ""
        ids = [m.id for m in check_required_settings(None)]
        assert "sync.W001" in ids

    def test_bad_engine_settings(self, settings):
        settings.CONTACT_SYNC = ["not", "a", "dict"]
        ids = [m.id for m in check_required_settings(None)]
        assert "sync.E003" in ids

    def test_production_without_database_url(self, settings, monkeypatch):
        settings.DEBUG = False
        monkeypatch.delenv("DATABASE_URL", raising=False)
        ids = [m.id for m in check_required_settings(None)]
        assert "sync.E001" in ids
