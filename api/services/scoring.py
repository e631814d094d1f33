"""
Scoring & feedback for finished interviews.

A deterministic heuristic over the candidate's turns: how many times they
answered and how long the answers were. No I/O, no randomness.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

MAX_SCORE = 100
RESPONSE_POINTS = 15
RESPONSE_POINTS_CAP = 60
LENGTH_POINTS_PER_WORD = 2
LENGTH_POINTS_CAP = 40

DETAILED_THRESHOLD = 20
ARTICULATE_THRESHOLD = 15

NO_RESPONSES_FEEDBACK = (
    "Interview Summary:\n"
    "- Total Responses: 0\n"
    "\n"
    "We didn't capture any responses from you during this interview. "
    "Make sure your microphone is working and try again.\n"
    "\n"
    "Keep practicing to improve your interview skills!"
)


class Speaker(str, Enum):
    CANDIDATE = "candidate"
    INTERVIEWER = "interviewer"

    @classmethod
    def from_role(cls, role: str) -> "Speaker":
        """Map a call-engine role (``user``/``assistant``) or a speaker name."""
        normalized = (role or "").strip().lower()
        if normalized in ("user", "candidate", "customer"):
            return cls.CANDIDATE
        if normalized in ("assistant", "ai", "bot", "interviewer"):
            return cls.INTERVIEWER
        raise ValueError(f"Unknown speaker role: {role!r}")

    @property
    def prefix(self) -> str:
        return "User" if self is Speaker.CANDIDATE else "AI"


@dataclass(frozen=True)
class TranscriptTurn:
    """One final utterance in the conversation."""

    speaker: Speaker
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"speaker": self.speaker.value, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranscriptTurn":
        return cls(speaker=Speaker(data["speaker"]), text=str(data.get("text", "")))


@dataclass(frozen=True)
class ScoreResult:
    score: int
    feedback: str


def word_count(text: str) -> int:
    return len(text.split())


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def candidate_turns(transcript: Iterable[TranscriptTurn]) -> list[TranscriptTurn]:
    return [turn for turn in transcript if turn.speaker is Speaker.CANDIDATE]


def render_transcript(transcript: Sequence[TranscriptTurn]) -> str:
    """Join turns into the persisted text form, one paragraph per turn."""
    return "\n\n".join(f"{turn.speaker.prefix}: {turn.text}" for turn in transcript)


def build_feedback(response_count: int, avg_words: float) -> str:
    """Render the feedback template for ``response_count`` answers."""
    if response_count == 0:
        return NO_RESPONSES_FEEDBACK

    avg = round_half_up(avg_words)
    communication = "Detailed and thorough" if avg > DETAILED_THRESHOLD else "Concise"
    articulation = "well-articulated" if avg > ARTICULATE_THRESHOLD else "clear and to the point"
    improvement = (
        "Consider providing more detailed examples in your responses"
        if avg < ARTICULATE_THRESHOLD
        else "Continue practicing to maintain consistency"
    )

    return (
        "Interview Summary:\n"
        f"- Total Responses: {response_count}\n"
        f"- Average Response Length: {avg} words\n"
        f"- Communication: {communication}\n"
        "\n"
        "Strengths:\n"
        "- You participated actively in the interview\n"
        f"- Your responses were {articulation}\n"
        "\n"
        "Areas for Improvement:\n"
        f"- {improvement}\n"
        "- Focus on highlighting specific achievements and metrics\n"
        "\n"
        "Keep practicing to improve your interview skills!"
    )


def score_transcript(transcript: Sequence[TranscriptTurn]) -> ScoreResult:
    """
    Score an ordered transcript.

    score = min(n * 15, 60) + min(avg_words * 2, 40), rounded half-up and
    clamped to [0, 100], where n is the number of candidate turns.

    Args:
        transcript: Turns in conversation order

    Returns:
        ScoreResult with the integer score and feedback text
    """
    responses = candidate_turns(transcript)
    if not responses:
        return ScoreResult(score=0, feedback=NO_RESPONSES_FEEDBACK)

    total_words = sum(word_count(turn.text) for turn in responses)
    avg_words = total_words / len(responses)

    raw = min(len(responses) * RESPONSE_POINTS, RESPONSE_POINTS_CAP)
    raw += min(avg_words * LENGTH_POINTS_PER_WORD, LENGTH_POINTS_CAP)
    score = max(0, min(MAX_SCORE, round_half_up(raw)))

    return ScoreResult(score=score, feedback=build_feedback(len(responses), avg_words))
