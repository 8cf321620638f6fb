"""Tests for alerts and alert channels."""

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from releasegate.exceptions import ChannelSendFailed
from releasegate.notifications import (
    Alert,
    AlertSeverity,
    AlertType,
    ConsoleAlertChannel,
    DesktopAlertChannel,
    EmailAlertChannel,
    SlackAlertChannel,
    StorageAlertChannel,
    WebhookAlertChannel,
)


def _alert(severity=AlertSeverity.HIGH, **kwargs) -> Alert:
    return Alert(
        type=kwargs.pop("type", AlertType.DEPLOYMENT_BLOCKED),
        severity=severity,
        message=kwargs.pop("message", "Deployment blocked"),
        details=kwargs.pop("details", {"overall_score": 42}),
        **kwargs,
    )


class TestAlert:
    """Alert dataclass."""

    def test_enum_type_normalized(self):
        """AlertType values are stored as plain strings."""
        alert = _alert()
        assert alert.type == "deployment_blocked"
        assert isinstance(alert.type, str)

    def test_severity_coerced(self):
        """String severities are converted to AlertSeverity."""
        alert = Alert("custom", "critical", "msg")
        assert alert.severity is AlertSeverity.CRITICAL

    def test_dict_round_trip(self):
        """to_dict and from_dict preserve every field."""
        alert = _alert()
        restored = Alert.from_dict(alert.to_dict())
        assert restored == alert

    def test_str(self):
        """String form shows severity and type."""
        assert str(_alert()) == "[HIGH] deployment_blocked: Deployment blocked"


class TestConsoleAlertChannel:
    def test_logs_at_severity_level(self, caplog):
        """Critical alerts are logged at CRITICAL."""
        channel = ConsoleAlertChannel()
        with caplog.at_level(logging.INFO, logger="releasegate"):
            channel.send(_alert(AlertSeverity.CRITICAL))

        record = caplog.records[-1]
        assert record.levelno == logging.CRITICAL
        assert "deployment_blocked" in record.getMessage()
        assert record.alert_type == "deployment_blocked"
        assert channel.is_available()


class TestStorageAlertChannel:
    def test_stores_json_lines(self, temp_dir: Path):
        """Each alert becomes one JSON line with a stored_at stamp."""
        channel = StorageAlertChannel(path=temp_dir / "alerts" / "alerts.jsonl")
        assert channel.is_available()

        channel.send(_alert())
        channel.send(_alert(AlertSeverity.LOW, message="second"))

        stored = channel.load()
        assert [a["message"] for a in stored] == ["Deployment blocked", "second"]
        assert "stored_at" in stored[0]

    def test_keeps_most_recent(self, temp_dir: Path):
        """Only the newest max_entries alerts are kept."""
        channel = StorageAlertChannel(path=temp_dir / "alerts.jsonl", max_entries=3)
        for i in range(5):
            channel.send(_alert(message=f"alert {i}"))

        assert [a["message"] for a in channel.load()] == ["alert 2", "alert 3", "alert 4"]

    def test_skips_corrupt_lines(self, temp_dir: Path):
        """Unparseable lines are ignored on load."""
        path = temp_dir / "alerts.jsonl"
        path.write_text(json.dumps({"message": "ok"}) + "\n{not json\n")

        assert StorageAlertChannel(path=path).load() == [{"message": "ok"}]


class TestDesktopAlertChannel:
    def test_unavailable_off_macos(self):
        """Desktop notifications need macOS."""
        with patch("releasegate.notifications.desktop.sys.platform", "linux"):
            channel = DesktopAlertChannel()
            assert not channel.is_available()
            with pytest.raises(ChannelSendFailed):
                channel.send(_alert())

    @patch("releasegate.notifications.desktop.subprocess.run")
    def test_sends_with_osascript(self, mock_run):
        """High severity alerts use osascript with a sound."""
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        with patch("releasegate.notifications.desktop.sys.platform", "darwin"):
            DesktopAlertChannel().send(_alert())

        args = mock_run.call_args[0][0]
        assert args[:2] == ["osascript", "-e"]
        assert 'sound name "Glass"' in args[2]

    @patch("releasegate.notifications.desktop.subprocess.run")
    def test_osascript_failure(self, mock_run):
        """A non-zero osascript exit is a send failure."""
        mock_run.return_value = MagicMock(returncode=1, stderr="not allowed")
        with patch("releasegate.notifications.desktop.sys.platform", "darwin"):
            with pytest.raises(ChannelSendFailed, match="not allowed"):
                DesktopAlertChannel().send(_alert(AlertSeverity.LOW))


class TestSlackAlertChannel:
    def test_unconfigured(self, monkeypatch):
        """Without a webhook URL the channel is unavailable."""
        monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
        assert not SlackAlertChannel().is_available()

    @patch("releasegate.notifications.slack.requests.post")
    def test_posts_payload(self, mock_post):
        """Alerts are posted as attachments with scalar details as fields."""
        mock_post.return_value = MagicMock(status_code=200)
        channel = SlackAlertChannel(webhook_url="https://hooks.slack.test/x", channel="#deploys")

        channel.send(_alert())

        payload = mock_post.call_args.kwargs["json"]
        assert payload["channel"] == "#deploys"
        attachment = payload["attachments"][0]
        assert attachment["title"] == "Alert: deployment_blocked"
        assert {"title": "overall_score", "value": "42", "short": True} in attachment["fields"]

    @patch("releasegate.notifications.slack.requests.post")
    def test_http_error(self, mock_post):
        """Non-200 responses raise ChannelSendFailed."""
        mock_post.return_value = MagicMock(status_code=500)
        with pytest.raises(ChannelSendFailed, match="HTTP 500"):
            SlackAlertChannel(webhook_url="https://hooks.slack.test/x").send(_alert())


class TestWebhookAlertChannel:
    @patch("releasegate.notifications.webhook.requests.post")
    def test_posts_alert(self, mock_post):
        """The alert is wrapped with a source marker."""
        channel = WebhookAlertChannel(url="https://ops.test/hook", headers={"X-Token": "t"})
        channel.send(_alert())

        kwargs = mock_post.call_args.kwargs
        assert kwargs["json"]["source"] == "releasegate"
        assert kwargs["json"]["alert"]["type"] == "deployment_blocked"
        assert kwargs["headers"] == {"X-Token": "t"}
        mock_post.return_value.raise_for_status.assert_called_once()

    @patch("releasegate.notifications.webhook.requests.post")
    def test_request_error(self, mock_post):
        """Transport errors become ChannelSendFailed."""
        mock_post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ChannelSendFailed, match="refused"):
            WebhookAlertChannel(url="https://ops.test/hook").send(_alert())


class TestEmailAlertChannel:
    def test_unconfigured(self, monkeypatch):
        """Missing SMTP settings make the channel unavailable."""
        for var in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "FROM_EMAIL", "TO_EMAILS"):
            monkeypatch.delenv(var, raising=False)
        channel = EmailAlertChannel()
        assert not channel.is_available()
        with pytest.raises(ChannelSendFailed):
            channel.send(_alert())

    @patch("releasegate.notifications.email.smtplib.SMTP")
    def test_sends_message(self, mock_smtp):
        """Configured channels log in and send a multipart message."""
        server = mock_smtp.return_value.__enter__.return_value
        channel = EmailAlertChannel(
            smtp_host="smtp.test",
            smtp_port=2525,
            smtp_user="bot",
            smtp_password="secret",
            from_email="bot@test",
            to_emails=["ops@test"],
        )

        channel.send(_alert(AlertSeverity.CRITICAL))

        mock_smtp.assert_called_once_with("smtp.test", 2525, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot", "secret")
        message = server.send_message.call_args[0][0]
        assert message["Subject"] == "[CRITICAL] deployment_blocked"
        assert message["To"] == "ops@test"

    def test_html_body_escapes_alert_content(self):
        """Markup in the message and details is escaped in the HTML part."""
        alert = Alert(
            type="deployment_blocked",
            severity=AlertSeverity.HIGH,
            message="Critical issues: <script>alert(1)</script>\nsee log",
            details={"reason": "a & b < c", "nested": {"skip": True}},
        )
        body = EmailAlertChannel(to_emails=["ops@test"])._format_html(alert)

        assert "<script>" not in body
        assert "&lt;script&gt;alert(1)&lt;/script&gt;<br>see log" in body
        assert "a &amp; b &lt; c" in body
        assert "skip" not in body
