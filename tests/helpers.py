import random
from typing import Dict, Iterable, Optional

from finsim.domain.game_rules import DEFAULT_STARTING_PARAMETERS, GameMode
from finsim.models.dc_models import PortfolioModel, SessionModel


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls the store makes."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttl: Dict[str, Optional[int]] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttl[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.ttl.pop(key, None)
                removed += 1
        return removed

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)

    async def aclose(self):
        return None


class ScriptedRandom(random.Random):
    """random.Random whose draws are taken from fixed lists, in order."""

    def __init__(self, randoms: Iterable[float] = (), randints: Iterable[int] = ()):
        super().__init__(0)
        self.randoms = list(randoms)
        self.randints = list(randints)

    def random(self):
        return self.randoms.pop(0)

    def randint(self, a, b):
        value = self.randints.pop(0)
        assert a <= value <= b
        return value


class QuietRandom(random.Random):
    """Never rolls a life event."""

    def random(self):
        return 0.99


def make_session(
    mode: GameMode = GameMode.tutorial,
    current_round: int = 1,
    cash: Optional[int] = None,
    **overrides,
) -> SessionModel:
    params = DEFAULT_STARTING_PARAMETERS[mode]
    fields = dict(
        uid="player-1",
        game_mode=mode,
        current_round=current_round,
        monthly_salary=params.monthly_salary,
        monthly_living=params.monthly_living,
        initial_cash=params.initial_cash,
        portfolio=PortfolioModel(cash=params.initial_cash if cash is None else cash),
    )
    fields.update(overrides)
    return SessionModel(**fields)
