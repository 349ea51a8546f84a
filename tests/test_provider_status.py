import pytest

from meetbot_webhooks.services.provider_status import (
    STATUS_ONLY_CODES,
    SYNC_TRIGGER_CODES,
    RecordingStatus,
    StatusOnly,
    SyncTrigger,
    UnknownStatus,
    classify_status_code,
)


def test_sync_trigger_codes_are_the_closed_set() -> None:
    assert SYNC_TRIGGER_CODES == {"done", "recording_done", "analysis_done", "fatal", "media_expired"}


def test_status_only_codes_are_the_closed_set() -> None:
    assert STATUS_ONLY_CODES == {
        "joining_call",
        "in_waiting_room",
        "in_call_not_recording",
        "in_call_recording",
        "call_ended",
    }


@pytest.mark.parametrize("code", sorted(SYNC_TRIGGER_CODES))
def test_sync_trigger_codes_classify_as_sync_trigger(code: str) -> None:
    assert classify_status_code(code) == SyncTrigger(code)


def test_status_only_codes_carry_internal_status_mapping() -> None:
    assert classify_status_code("in_call_recording") == StatusOnly(
        "in_call_recording",
        RecordingStatus.recording,
    )
    assert classify_status_code("call_ended") == StatusOnly("call_ended", RecordingStatus.processing)
    assert classify_status_code("joining_call") == StatusOnly("joining_call", None)
    assert classify_status_code("in_waiting_room") == StatusOnly("in_waiting_room", None)


@pytest.mark.parametrize("code", ["bot.status_change", "DONE", "recording_permission_denied", "", None])
def test_unrecognized_codes_fall_back_to_unknown(code: str | None) -> None:
    assert classify_status_code(code) == UnknownStatus(code)
