"""
API Services Layer.

The session orchestrator, the status transition gateway and the pure
helpers they share.
"""

from api.services.applications import Actor, AdvanceResult, StatusTransitionGateway
from api.services.call_events import CallEvent, CallEventKind, parse_call_event
from api.services.scoring import Speaker, TranscriptTurn, render_transcript, score_transcript
from api.services.sessions import (
    SessionArtifact,
    SessionHandle,
    SessionOrchestrator,
    SessionReaper,
)
from api.services.transcripts import InMemoryTranscriptBuffer, RedisTranscriptBuffer

__all__ = [
    "Actor",
    "AdvanceResult",
    "CallEvent",
    "CallEventKind",
    "InMemoryTranscriptBuffer",
    "RedisTranscriptBuffer",
    "SessionArtifact",
    "SessionHandle",
    "SessionOrchestrator",
    "SessionReaper",
    "Speaker",
    "StatusTransitionGateway",
    "TranscriptTurn",
    "parse_call_event",
    "render_transcript",
    "score_transcript",
]
