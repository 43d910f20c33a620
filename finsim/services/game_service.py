import logging
import random
from datetime import datetime
from typing import Optional

from finsim.domain.actions import ActionProcessor
from finsim.domain.game_rules import GameMode, is_valid_round
from finsim.domain.life_events import LifeEventResolver
from finsim.domain.portfolio_rules import update_summary
from finsim.domain.round_lifecycle import RoundLifecycle, build_round_state, market_for, use_advice
from finsim.load_secrets import session_ttl_active, session_ttl_completed, starting_parameters
from finsim.models.action_models import LifeEventResolutionModel, ProceedRoundRequest
from finsim.models.dc_models import SessionModel
from finsim.models.response_models import GameResult, ResultCode
from finsim.session_store import SessionStore


def round_rng(seed: Optional[int], label: str) -> random.Random:
    """Seeded sessions get one reproducible generator per round."""
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:{label}")


class GameService:
    """Load the session, run one domain operation, save on success."""

    def __init__(
        self,
        store: SessionStore,
        ttl_active: int = session_ttl_active,
        ttl_completed: int = session_ttl_completed,
    ):
        self.store = store
        self.ttl_active = ttl_active
        self.ttl_completed = ttl_completed

    async def _save(self, session: SessionModel) -> None:
        session.updated_at = datetime.now()
        ttl = self.ttl_completed if session.completed else self.ttl_active
        await self.store.save(session, ttl)

    async def start_game(self, uid: str, mode: GameMode, seed: Optional[int] = None) -> GameResult:
        """Start a new game, replacing a finished one

        Args:
            uid (str): Player id
            mode (GameMode): Game mode
            seed (Optional[int]): Makes every random draw of the game reproducible

        Returns:
            GameResult: RoundStateModel of round 1, or GAME_IN_PROGRESS
        """
        mode = GameMode(mode)
        existing = await self.store.load(uid, mode)
        if existing is not None and not existing.completed:
            return GameResult.failure(ResultCode.game_in_progress, f"round {existing.current_round} in progress")

        lifecycle = RoundLifecycle(round_rng(seed, "start"))
        session = lifecycle.start_game(uid, mode, starting_parameters(mode), now=datetime.now(), seed=seed)
        await self._save(session)
        return GameResult.success(build_round_state(session, market_for(session)))

    async def get_state(self, uid: str, mode: GameMode) -> GameResult:
        session = await self.store.load(uid, mode)
        if session is None:
            return GameResult.failure(ResultCode.session_not_found)
        return GameResult.success(build_round_state(session, market_for(session)))

    async def proceed_round(self, uid: str, mode: GameMode, request: ProceedRoundRequest) -> GameResult:
        """Submit the current round's actions and move the game forward

        Args:
            uid (str): Player id
            mode (GameMode): Game mode
            request (ProceedRoundRequest): Round number, actions and optional life-event resolution

        Returns:
            GameResult: RoundStateModel of the next round or of the completed game
        """
        session = await self.store.load(uid, mode)
        if session is None:
            return GameResult.failure(ResultCode.session_not_found)
        if session.completed:
            return GameResult.failure(ResultCode.game_completed)
        if not is_valid_round(session.game_mode, request.round_no) or request.round_no != session.current_round:
            return GameResult.failure(
                ResultCode.invalid_round, f"round_no={request.round_no} current_round={session.current_round}"
            )

        lifecycle = RoundLifecycle(round_rng(session.seed, str(session.current_round + 1)))
        state = lifecycle.proceed_round(session, request.actions, request.life_event)
        await self._save(session)
        logging.info(f"Round proceeded: uid={uid} mode={session.game_mode.value} round={session.current_round}")
        return GameResult.success(state)

    async def resolve_life_event(self, uid: str, mode: GameMode, resolution: LifeEventResolutionModel) -> GameResult:
        session = await self.store.load(uid, mode)
        if session is None:
            return GameResult.failure(ResultCode.session_not_found)
        if session.completed:
            return GameResult.failure(ResultCode.game_completed)
        event = session.pending_life_event
        if event is None or event.event_key != resolution.event_key:
            return GameResult.failure(ResultCode.no_pending_event)

        resolver = LifeEventResolver(ActionProcessor(market_for(session)))
        result = resolver.resolve(session, resolution.resolution_type, resolution.loan_amount)
        if not result.ok:
            return result
        update_summary(session.portfolio)
        await self._save(session)
        return result

    async def use_advice(self, uid: str, mode: GameMode) -> GameResult:
        session = await self.store.load(uid, mode)
        if session is None:
            return GameResult.failure(ResultCode.session_not_found)
        if not use_advice(session):
            return GameResult.failure(ResultCode.advice_limit_reached)
        await self._save(session)
        return GameResult.success({"advice_used_count": session.advice_used_count})

    async def get_score(self, uid: str, mode: GameMode) -> GameResult:
        session = await self.store.load(uid, mode)
        if session is None:
            return GameResult.failure(ResultCode.session_not_found)
        if not session.completed or session.final_score is None:
            return GameResult.failure(ResultCode.game_not_completed)
        return GameResult.success(session.final_score)

    async def reset(self, uid: str, mode: GameMode) -> GameResult:
        if not await self.store.delete(uid, mode):
            return GameResult.failure(ResultCode.session_not_found)
        logging.info(f"Session reset: uid={uid} mode={GameMode(mode).value}")
        return GameResult.success({"deleted": True})
