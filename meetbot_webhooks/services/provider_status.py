"""Closed classification of bot provider status codes.

Every code the provider can send falls into exactly one variant:

* ``SyncTrigger``: the recording reached a state worth running the import
  pipeline for.
* ``StatusOnly``: progress notification. ``internal_status`` is the recording
  status it maps to, or ``None`` when it is acknowledged without a write.
* ``UnknownStatus``: anything else, including a missing code. Acknowledged and
  otherwise ignored so new provider codes never break delivery.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RecordingStatus(StrEnum):
    pending = "pending"
    joining = "joining"
    recording = "recording"
    processing = "processing"
    done = "done"
    error = "error"


@dataclass(frozen=True)
class SyncTrigger:
    code: str


@dataclass(frozen=True)
class StatusOnly:
    code: str
    internal_status: RecordingStatus | None = None


@dataclass(frozen=True)
class UnknownStatus:
    code: str | None


ProviderStatus = SyncTrigger | StatusOnly | UnknownStatus

_KNOWN_STATUSES: dict[str, SyncTrigger | StatusOnly] = {
    status.code: status
    for status in (
        SyncTrigger("done"),
        SyncTrigger("recording_done"),
        SyncTrigger("analysis_done"),
        SyncTrigger("fatal"),
        SyncTrigger("media_expired"),
        StatusOnly("joining_call"),
        StatusOnly("in_waiting_room"),
        StatusOnly("in_call_not_recording"),
        StatusOnly("in_call_recording", RecordingStatus.recording),
        StatusOnly("call_ended", RecordingStatus.processing),
    )
}

SYNC_TRIGGER_CODES = frozenset(
    code for code, status in _KNOWN_STATUSES.items() if isinstance(status, SyncTrigger)
)
STATUS_ONLY_CODES = frozenset(
    code for code, status in _KNOWN_STATUSES.items() if isinstance(status, StatusOnly)
)


def classify_status_code(code: str | None) -> ProviderStatus:
    if code is None:
        return UnknownStatus(code=None)
    return _KNOWN_STATUSES.get(code) or UnknownStatus(code=code)
