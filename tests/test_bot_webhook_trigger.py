import json
from datetime import UTC, datetime, timedelta
from urllib import error

import pytest

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.services.bot_webhook_trigger import (
    BotWebhookTrigger,
    create_bot_webhook_trigger,
    extract_meeting_url,
)
from meetbot_webhooks.services.signature_codec import verify_signature
from meetbot_webhooks.services.triggered_meeting_cache import (
    TriggeredMeetingCache,
    clear_triggered_meeting_cache,
)
from meetbot_webhooks.services.webhook_token_service import WebhookTokenService

SECRET = "s3cr3t"
NOW_MS = 1_760_000_000_000


class _MockResponse:
    def __init__(self, payload: object) -> None:
        self._payload = json.dumps(payload).encode("utf-8")

    def __enter__(self) -> "_MockResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # type: ignore[no-untyped-def]
        return False

    def read(self) -> bytes:
        return self._payload


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _build_trigger(cache: TriggeredMeetingCache | None = None) -> BotWebhookTrigger:
    settings = Settings(webhook_signing_secret=SECRET)
    return BotWebhookTrigger(
        start_bot_url="https://api.example.com/api/webhooks/start-bot",
        token_service=WebhookTokenService(settings, clock=lambda: NOW_MS),
        cache=cache,
    )


def test_extract_meeting_url_prefers_explicit_links() -> None:
    assert extract_meeting_url(
        {
            "meetingUrl": "https://zoom.us/j/1",
            "hangoutLink": "https://meet.google.com/aaa-bbbb-ccc",
            "location": "https://teams.microsoft.com/l/x",
        },
    ) == "https://zoom.us/j/1"
    assert extract_meeting_url(
        {"hangoutLink": "https://meet.google.com/aaa-bbbb-ccc", "location": "Room 4"},
    ) == "https://meet.google.com/aaa-bbbb-ccc"


def test_extract_meeting_url_scans_location_then_description() -> None:
    assert extract_meeting_url(
        {"location": "Room 4 / https://zoom.us/j/555 (backup)", "description": "https://meet.google.com/x"},
    ) == "https://zoom.us/j/555"
    assert extract_meeting_url(
        {"location": "Room 4", "description": "Join here:\nhttps://meet.google.com/xyz-abcd-efg\nThanks"},
    ) == "https://meet.google.com/xyz-abcd-efg"
    assert extract_meeting_url({"location": "Room 4", "description": None}) is None


def test_trigger_sends_signed_command(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        captured["body"] = req.data.decode("utf-8")
        captured["timestamp"] = req.get_header("X-webhook-timestamp")
        captured["signature"] = req.get_header("X-webhook-signature")
        return _MockResponse({"success": True, "message": "Bot start signal received for evt-1"})

    monkeypatch.setattr("meetbot_webhooks.services.bot_webhook_trigger.request.urlopen", fake_urlopen)
    trigger = _build_trigger()

    result = trigger.trigger(
        {
            "id": "evt-1",
            "summary": "Planning",
            "hangoutLink": "https://meet.google.com/abc-defg-hij",
            "start": "2026-03-02T10:00:00Z",
            "end": "2026-03-02T11:00:00Z",
        },
    )

    assert result.status == "triggered"
    assert result.meeting_url == "https://meet.google.com/abc-defg-hij"
    assert result.response == {"success": True, "message": "Bot start signal received for evt-1"}
    assert captured["timestamp"] == str(NOW_MS)
    assert json.loads(str(captured["body"]))["meetingId"] == "evt-1"
    assert verify_signature(
        SECRET,
        str(captured["timestamp"]),
        str(captured["body"]),
        str(captured["signature"]),
        now_ms=NOW_MS,
    )
    assert trigger.cache.contains("evt-1")


def test_trigger_skips_meeting_already_triggered(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        calls["count"] += 1
        return _MockResponse({"success": True})

    monkeypatch.setattr("meetbot_webhooks.services.bot_webhook_trigger.request.urlopen", fake_urlopen)
    trigger = _build_trigger()
    event = {"id": "evt-2", "meetingUrl": "https://zoom.us/j/2"}

    first = trigger.trigger(event)
    second = trigger.trigger(event)

    assert first.status == "triggered"
    assert second.status == "already_triggered"
    assert calls["count"] == 1


def test_event_without_url_is_marked_to_avoid_repeated_warnings() -> None:
    trigger = _build_trigger()

    first = trigger.trigger({"id": "evt-3", "summary": "Lunch", "location": "Cafeteria"})
    second = trigger.trigger({"id": "evt-3", "summary": "Lunch", "location": "Cafeteria"})

    assert first.status == "no_meeting_url"
    assert second.status == "already_triggered"


def test_failed_send_is_removed_from_cache_for_retry(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        raise error.URLError("connection reset")

    monkeypatch.setattr("meetbot_webhooks.services.bot_webhook_trigger.request.urlopen", fake_urlopen)
    trigger = _build_trigger()

    result = trigger.trigger({"id": "evt-4", "meetingUrl": "https://zoom.us/j/4"})

    assert result.status == "failed"
    assert "connection reset" in (result.error or "")
    assert not trigger.cache.contains("evt-4")


def test_missing_signing_secret_fails_without_sending(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        raise AssertionError("must not send unsigned commands")

    monkeypatch.setattr("meetbot_webhooks.services.bot_webhook_trigger.request.urlopen", fake_urlopen)
    trigger = BotWebhookTrigger(
        start_bot_url="https://api.example.com/api/webhooks/start-bot",
        token_service=WebhookTokenService(Settings(webhook_signing_secret="")),
    )

    result = trigger.trigger({"id": "evt-5", "meetingUrl": "https://zoom.us/j/5"})

    assert result.status == "failed"
    assert "Server configuration error" in (result.error or "")


def test_trigger_requires_event_id() -> None:
    with pytest.raises(ValueError):
        _build_trigger().trigger({"meetingUrl": "https://zoom.us/j/6"})


def test_cache_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache = TriggeredMeetingCache(ttl=timedelta(hours=24), clock=clock)
    cache.mark("evt-1")

    clock.now += timedelta(hours=23, minutes=59)
    assert cache.contains("evt-1")

    clock.now += timedelta(minutes=1)
    assert not cache.contains("evt-1")
    assert len(cache) == 0


def test_forget_missing_keeps_only_current_events() -> None:
    trigger = _build_trigger()
    trigger.cache.mark("evt-1")
    trigger.cache.mark("evt-2")

    trigger.forget_missing(["evt-2", "evt-3"])

    assert not trigger.cache.contains("evt-1")
    assert trigger.cache.contains("evt-2")
    assert len(trigger.cache) == 1


def test_create_bot_webhook_trigger_uses_settings() -> None:
    trigger = create_bot_webhook_trigger(
        Settings(
            webhook_signing_secret=SECRET,
            start_bot_webhook_url=" https://api.example.com/api/webhooks/start-bot ",
            trigger_cache_ttl_hours=6,
        ),
    )

    assert trigger.start_bot_url == "https://api.example.com/api/webhooks/start-bot"
    assert trigger.cache.ttl == timedelta(hours=6)
    clear_triggered_meeting_cache()


def test_create_bot_webhook_trigger_shares_cache_between_calls() -> None:
    clear_triggered_meeting_cache()
    settings = Settings(webhook_signing_secret=SECRET)

    first = create_bot_webhook_trigger(settings)
    first.cache.mark("evt-1")
    second = create_bot_webhook_trigger(settings)

    assert second.cache is first.cache
    assert second.cache.contains("evt-1")
    clear_triggered_meeting_cache()


def test_trigger_upcoming_forgets_meetings_no_longer_listed(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        return _MockResponse({"success": True})

    monkeypatch.setattr("meetbot_webhooks.services.bot_webhook_trigger.request.urlopen", fake_urlopen)
    trigger = _build_trigger()
    trigger.cache.mark("evt-cancelled")

    results = trigger.trigger_upcoming(
        [
            {"id": "evt-7", "meetingUrl": "https://zoom.us/j/7"},
            {"id": "evt-8", "location": "Room 2"},
        ],
    )

    assert [result.status for result in results] == ["triggered", "no_meeting_url"]
    assert not trigger.cache.contains("evt-cancelled")
    assert trigger.cache.contains("evt-7")
    assert trigger.cache.contains("evt-8")
