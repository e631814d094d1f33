"""
Per-session transcript buffers.

Final transcript turns accumulate here while a call is live and are read
back in arrival order at finalization.
"""

import json
import logging
from collections import defaultdict
from typing import Optional, Protocol

from redis.asyncio import Redis, from_url

from api.services.scoring import TranscriptTurn

logger = logging.getLogger(__name__)

BUFFER_KEY_PREFIX = "screening:transcript"
BUFFER_TTL_SECONDS = 24 * 60 * 60


class TranscriptBuffer(Protocol):
    async def append(self, session_id: int, turn: TranscriptTurn) -> None: ...

    async def read(self, session_id: int) -> list[TranscriptTurn]: ...

    async def clear(self, session_id: int) -> None: ...

    async def close(self) -> None: ...


class InMemoryTranscriptBuffer:
    """Process-local buffer. Callers serialize access per session."""

    def __init__(self):
        self._turns: dict[int, list[TranscriptTurn]] = defaultdict(list)

    async def append(self, session_id: int, turn: TranscriptTurn) -> None:
        self._turns[session_id].append(turn)

    async def read(self, session_id: int) -> list[TranscriptTurn]:
        return list(self._turns.get(session_id, ()))

    async def clear(self, session_id: int) -> None:
        self._turns.pop(session_id, None)

    async def close(self) -> None:
        self._turns.clear()


class RedisTranscriptBuffer:
    """
    Redis list per session, shared by every API process.

    RPUSH keeps arrival order; keys expire a day after the last append so
    abandoned calls do not leak.
    """

    def __init__(self, redis: Optional[Redis] = None, redis_url: Optional[str] = None):
        if redis is None and redis_url is None:
            raise ValueError("RedisTranscriptBuffer needs a client or a URL")
        self._redis = redis or from_url(redis_url, encoding="utf-8", decode_responses=True)

    @staticmethod
    def key(session_id: int) -> str:
        return f"{BUFFER_KEY_PREFIX}:{session_id}"

    async def append(self, session_id: int, turn: TranscriptTurn) -> None:
        key = self.key(session_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.rpush(key, json.dumps(turn.to_dict()))
            pipe.expire(key, BUFFER_TTL_SECONDS)
            await pipe.execute()

    async def read(self, session_id: int) -> list[TranscriptTurn]:
        raw = await self._redis.lrange(self.key(session_id), 0, -1)
        return [TranscriptTurn.from_dict(json.loads(item)) for item in raw]

    async def clear(self, session_id: int) -> None:
        await self._redis.delete(self.key(session_id))

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Transcript buffer Redis connection closed")
