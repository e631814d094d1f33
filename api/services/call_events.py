"""
Call engine event parsing.

Accepts both the canonical event kinds (``call-started``, ``transcript-turn``
...) and the engine's native client/server message shapes (``call-start``,
``transcript`` with ``transcriptType``, ``speech-update``,
``end-of-call-report`` ...), and normalizes them to one ``CallEvent``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from api.services.scoring import Speaker, TranscriptTurn


class CallEventKind(str, Enum):
    CALL_STARTED = "call-started"
    SPEECH_STARTED = "speech-started"
    SPEECH_ENDED = "speech-ended"
    TRANSCRIPT_TURN = "transcript-turn"
    CALL_ENDED = "call-ended"
    ERROR = "error"
    OTHER = "other"


_KIND_ALIASES = {
    "call-started": CallEventKind.CALL_STARTED,
    "call-start": CallEventKind.CALL_STARTED,
    "speech-started": CallEventKind.SPEECH_STARTED,
    "speech-start": CallEventKind.SPEECH_STARTED,
    "speech-ended": CallEventKind.SPEECH_ENDED,
    "speech-end": CallEventKind.SPEECH_ENDED,
    "transcript-turn": CallEventKind.TRANSCRIPT_TURN,
    "transcript": CallEventKind.TRANSCRIPT_TURN,
    "call-ended": CallEventKind.CALL_ENDED,
    "call-end": CallEventKind.CALL_ENDED,
    "end-of-call-report": CallEventKind.CALL_ENDED,
    "error": CallEventKind.ERROR,
}


@dataclass(frozen=True)
class CallEvent:
    kind: CallEventKind
    call_id: Optional[str] = None
    session_id: Optional[int] = None
    turn: Optional[TranscriptTurn] = None
    is_final: bool = False
    error: Optional[str] = None
    raw_type: Optional[str] = None


def _kind_for(event_type: str, message: Mapping[str, Any]) -> CallEventKind:
    if event_type == "speech-update":
        status = str(message.get("status", "")).lower()
        return CallEventKind.SPEECH_STARTED if status == "started" else CallEventKind.SPEECH_ENDED
    if event_type == "status-update":
        status = str(message.get("status", "")).lower()
        if status == "in-progress":
            return CallEventKind.CALL_STARTED
        if status == "ended":
            return CallEventKind.CALL_ENDED
        return CallEventKind.OTHER
    return _KIND_ALIASES.get(event_type, CallEventKind.OTHER)


def _session_hint(message: Mapping[str, Any]) -> Optional[int]:
    call = message.get("call")
    call = call if isinstance(call, Mapping) else {}
    for metadata in (message.get("metadata"), call.get("metadata")):
        if isinstance(metadata, Mapping) and metadata.get("session_id") is not None:
            try:
                return int(metadata["session_id"])
            except (TypeError, ValueError):
                return None
    return None


def _error_text(message: Mapping[str, Any]) -> str:
    error = message.get("error")
    if isinstance(error, Mapping):
        return str(error.get("message") or error.get("type") or "call engine error")
    return str(error or message.get("message") or "call engine error")


def parse_call_event(payload: Mapping[str, Any]) -> CallEvent:
    """
    Normalize one call engine message.

    Server deliveries wrap the message in ``{"message": {...}}``; client
    events arrive bare. Any message carrying ``call.id`` (or ``call_id``)
    yields the external call id.

    Raises:
        ValueError: the message has no ``type``, or a transcript turn has an
            unknown speaker role
    """
    message = payload.get("message") if isinstance(payload.get("message"), Mapping) else payload
    event_type = str(message.get("type") or message.get("kind") or "").strip().lower()
    if not event_type:
        raise ValueError("Call event is missing its type")

    call = message.get("call")
    call_id = message.get("call_id") or message.get("callId")
    if isinstance(call, Mapping) and call.get("id"):
        call_id = call["id"]
    # Blank ids count as absent
    call_id = str(call_id).strip() if call_id else ""

    kind = _kind_for(event_type, message)
    turn = None
    is_final = False
    error = None

    if kind is CallEventKind.TRANSCRIPT_TURN:
        speaker = Speaker.from_role(str(message.get("speaker") or message.get("role") or ""))
        text = message.get("text")
        if text is None:
            text = message.get("transcript", "")
        if "is_final" in message or "isFinal" in message:
            is_final = bool(message.get("is_final", message.get("isFinal")))
        else:
            is_final = str(message.get("transcriptType", "")).lower() == "final"
        turn = TranscriptTurn(speaker=speaker, text=str(text).strip())
    elif kind is CallEventKind.ERROR:
        error = _error_text(message)

    return CallEvent(
        kind=kind,
        call_id=call_id or None,
        session_id=_session_hint(message),
        turn=turn,
        is_final=is_final,
        error=error,
        raw_type=event_type,
    )
