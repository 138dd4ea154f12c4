"""Tests for transcript email notifications."""

import httpx

from widgetbot import Tenant
from widgetbot.models import ConversationTurn
from widgetbot.notifications import TranscriptNotifier, format_transcript

TURNS = [
    ConversationTurn(role="system", content="hidden"),
    ConversationTurn(role="user", content="Do you ship <fast>?"),
    ConversationTurn(role="assistant", content="Within 3 days."),
]


def test_format_transcript_labels_speakers():
    assert format_transcript(TURNS) == (
        "Customer: Do you ship <fast>?\n\nAI: Within 3 days."
    )


def test_build_email_escapes_html(notifier):
    tenant = Tenant(id="t1", business_name="Fish & Chips")

    email = notifier.build_email(tenant, TURNS, "owner@example.com")

    assert email["to"] == ["owner@example.com"]
    assert email["subject"] == "New Conversation - Fish & Chips"
    assert "Fish &amp; Chips" in email["html"]
    assert "&lt;fast&gt;" in email["html"]
    assert "<fast>" not in email["html"]


def test_send_transcript_posts_to_resend(notifier, mock_http_client):
    tenant = Tenant(id="t1", business_name="Acme")

    assert notifier.send_transcript(tenant, TURNS, "owner@example.com")

    (url,), kwargs = mock_http_client.post.call_args
    assert url == "https://api.resend.test/emails"
    assert kwargs["headers"]["Authorization"] == "Bearer re-test-key"
    assert kwargs["json"]["from"] == "Bot <bot@example.com>"


def test_send_transcript_swallows_provider_errors(notifier, mock_http_client, caplog):
    mock_http_client.post.return_value = httpx.Response(
        500, request=httpx.Request("POST", "https://api.resend.test/emails")
    )

    with caplog.at_level("ERROR"):
        sent = notifier.send_transcript(Tenant(id="t1"), TURNS, "owner@example.com")

    assert sent is False
    assert "Failed to send email notification" in caplog.text


def test_send_transcript_swallows_network_errors(notifier, mock_http_client):
    mock_http_client.post.side_effect = httpx.ConnectError("refused")

    assert notifier.send_transcript(Tenant(id="t1"), TURNS, "a@b.c") is False


def test_disabled_without_api_key(mock_http_client):
    notifier = TranscriptNotifier(api_key="", http_client=mock_http_client)

    assert not notifier.enabled
    assert notifier.send_transcript(Tenant(id="t1"), TURNS, "a@b.c") is False
    mock_http_client.post.assert_not_called()


def test_blank_recipient_is_skipped(notifier, mock_http_client):
    assert notifier.send_transcript(Tenant(id="t1"), TURNS, "") is False
    mock_http_client.post.assert_not_called()
