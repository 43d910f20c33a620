import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from finsim.domain.game_rules import GameMode
from finsim.models.action_models import LifeEventResolutionModel, ProceedRoundRequest, StartGameRequest
from finsim.models.dc_models import ScoreModel
from finsim.models.response_models import GameResult, ResultCode, RoundStateModel
from finsim.services.game_service import GameService
from finsim.session_store import SessionStore

game_router = APIRouter(prefix="/games/{mode}/{uid}", tags=["game"])

NOT_FOUND_CODES = {ResultCode.session_not_found, ResultCode.portfolio_not_found, ResultCode.no_pending_event}
CONFLICT_CODES = {ResultCode.game_in_progress, ResultCode.game_completed, ResultCode.game_not_completed}


def get_game_service(request: Request) -> GameService:
    return GameService(SessionStore(request.app.state.redis))


def unwrap(result: GameResult):
    """Return the payload of a successful result, or raise the matching HTTP error."""
    if result.ok:
        return result.data
    if result.code in NOT_FOUND_CODES:
        status_code = status.HTTP_404_NOT_FOUND
    elif result.code in CONFLICT_CODES:
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    logging.info(f"Request rejected: code={result.code.value} message={result.message}")
    raise HTTPException(
        status_code=status_code,
        detail={"code": result.code.value, "message": result.message},
    )


class GameAPI:
    @staticmethod
    @game_router.post("/start", response_model=RoundStateModel, status_code=status.HTTP_201_CREATED)
    async def start_game(
        mode: GameMode,
        uid: str,
        body: StartGameRequest = StartGameRequest(),
        service: GameService = Depends(get_game_service),
    ):
        return unwrap(await service.start_game(uid, mode, body.seed))

    @staticmethod
    @game_router.get("/", response_model=RoundStateModel)
    async def get_state(mode: GameMode, uid: str, service: GameService = Depends(get_game_service)):
        return unwrap(await service.get_state(uid, mode))

    @staticmethod
    @game_router.post("/proceed", response_model=RoundStateModel)
    async def proceed_round(
        mode: GameMode,
        uid: str,
        body: ProceedRoundRequest,
        service: GameService = Depends(get_game_service),
    ):
        return unwrap(await service.proceed_round(uid, mode, body))

    @staticmethod
    @game_router.delete("/")
    async def reset_game(mode: GameMode, uid: str, service: GameService = Depends(get_game_service)):
        return unwrap(await service.reset(uid, mode))


class LifeEventAPI:
    @staticmethod
    @game_router.post("/life-event")
    async def resolve_life_event(
        mode: GameMode,
        uid: str,
        body: LifeEventResolutionModel,
        service: GameService = Depends(get_game_service),
    ):
        return unwrap(await service.resolve_life_event(uid, mode, body))


class AdviceAPI:
    @staticmethod
    @game_router.post("/advice")
    async def use_advice(mode: GameMode, uid: str, service: GameService = Depends(get_game_service)):
        return unwrap(await service.use_advice(uid, mode))


class ScoreAPI:
    @staticmethod
    @game_router.get("/score", response_model=ScoreModel)
    async def get_score(mode: GameMode, uid: str, service: GameService = Depends(get_game_service)):
        return unwrap(await service.get_score(uid, mode))
