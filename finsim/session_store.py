import logging
from typing import Optional

from redis.asyncio import Redis

from finsim.domain.game_rules import GameMode
from finsim.models.dc_models import SessionModel


def session_key(uid: str, mode: GameMode) -> str:
    return f"game:session:{uid}:{GameMode(mode).value}"


class SessionStore:
    """Session snapshots in Redis, stored as the JSON of SessionModel."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def load(self, uid: str, mode: GameMode) -> Optional[SessionModel]:
        raw = await self.redis.get(session_key(uid, mode))
        if raw is None:
            return None
        return SessionModel.model_validate_json(raw)

    async def save(self, session: SessionModel, ttl: int) -> None:
        """Overwrite the snapshot and reset its expiry

        Args:
            session (SessionModel): Session to store
            ttl (int): Expiry in seconds
        """
        key = session_key(session.uid, session.game_mode)
        await self.redis.set(key, session.model_dump_json(), ex=ttl)
        logging.debug(f"Session saved: key={key} round={session.current_round} ttl={ttl}")

    async def delete(self, uid: str, mode: GameMode) -> bool:
        deleted = await self.redis.delete(session_key(uid, mode))
        return deleted > 0

    async def exists(self, uid: str, mode: GameMode) -> bool:
        return await self.redis.exists(session_key(uid, mode)) > 0
