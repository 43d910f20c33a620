import pytest

from finsim.domain.game_rules import GameMode
from finsim.models.action_models import LifeEventResolutionModel, ProceedRoundRequest
from finsim.models.dc_models import LifeEventModel
from finsim.models.response_models import ResultCode
from finsim.services.game_service import GameService
from finsim.session_store import SessionStore
from tests.helpers import FakeRedis, make_session

UID = "player-1"
TUTORIAL = GameMode.tutorial


@pytest.fixture
def service(store):
    return GameService(store, ttl_active=100, ttl_completed=1_000)


async def play_to_end(service, mode=TUTORIAL):
    state = None
    for round_no in range(1, 13):
        result = await service.proceed_round(UID, mode, ProceedRoundRequest(round_no=round_no))
        assert result.ok
        state = result.data
        if state.completed:
            break
    return state


async def test_start_game(service, fake_redis):
    result = await service.start_game(UID, TUTORIAL)
    assert result.ok
    assert result.data.current_round == 1
    assert result.data.portfolio.summary.cash == 3_000_000
    assert fake_redis.ttl["game:session:player-1:TUTORIAL"] == 100


async def test_start_while_in_progress_conflicts(service):
    await service.start_game(UID, TUTORIAL)
    result = await service.start_game(UID, TUTORIAL)
    assert result.code == ResultCode.game_in_progress


async def test_modes_are_independent(service):
    await service.start_game(UID, TUTORIAL)
    result = await service.start_game(UID, GameMode.competition)
    assert result.ok
    assert result.data.portfolio.summary.cash == 5_000_000


async def test_missing_session(service):
    assert (await service.get_state(UID, TUTORIAL)).code == ResultCode.session_not_found
    request = ProceedRoundRequest(round_no=1)
    assert (await service.proceed_round(UID, TUTORIAL, request)).code == ResultCode.session_not_found


async def test_round_number_must_match(service):
    await service.start_game(UID, TUTORIAL)
    result = await service.proceed_round(UID, TUTORIAL, ProceedRoundRequest(round_no=2))
    assert result.code == ResultCode.invalid_round
    state = (await service.get_state(UID, TUTORIAL)).data
    assert state.current_round == 1


async def test_full_game_then_score(service, fake_redis):
    await service.start_game(UID, TUTORIAL, seed=11)
    assert (await service.get_score(UID, TUTORIAL)).code == ResultCode.game_not_completed

    state = await play_to_end(service)
    assert state.completed
    assert state.current_round == 6
    assert fake_redis.ttl["game:session:player-1:TUTORIAL"] == 1_000

    again = await service.proceed_round(UID, TUTORIAL, ProceedRoundRequest(round_no=6))
    assert again.code == ResultCode.game_completed
    score = await service.get_score(UID, TUTORIAL)
    assert score.ok
    assert score.data.total_score == state.final_score.total_score

    restarted = await service.start_game(UID, TUTORIAL)
    assert restarted.ok


async def test_seeded_games_replay_identically():
    first = GameService(SessionStore(FakeRedis()))
    second = GameService(SessionStore(FakeRedis()))
    await first.start_game(UID, GameMode.competition, seed=5)
    await second.start_game(UID, GameMode.competition, seed=5)
    first_state = await play_to_end(first, GameMode.competition)
    second_state = await play_to_end(second, GameMode.competition)
    assert first_state.portfolio.summary == second_state.portfolio.summary
    assert first_state.final_score == second_state.final_score


async def test_resolve_life_event(service, store):
    event = LifeEventModel(event_key="EVENT_TUTORIAL_R2_03", event_type="EXPENSE", amount=300_000, round_number=2)
    await store.save(make_session(current_round=2, pending_life_event=event), 100)

    wrong = LifeEventResolutionModel(event_key="EVENT_TUTORIAL_R2_01", resolution_type="CASH")
    assert (await service.resolve_life_event(UID, TUTORIAL, wrong)).code == ResultCode.no_pending_event

    resolution = LifeEventResolutionModel(event_key="EVENT_TUTORIAL_R2_03", resolution_type="CASH")
    result = await service.resolve_life_event(UID, TUTORIAL, resolution)
    assert result.ok
    saved = await store.load(UID, TUTORIAL)
    assert saved.portfolio.cash == 2_700_000
    assert saved.pending_life_event.resolved

    again = await service.resolve_life_event(UID, TUTORIAL, resolution)
    assert again.code == ResultCode.no_pending_event


async def test_advice_limit(service):
    await service.start_game(UID, TUTORIAL)
    for used in (1, 2, 3):
        result = await service.use_advice(UID, TUTORIAL)
        assert result.data["advice_used_count"] == used
    assert (await service.use_advice(UID, TUTORIAL)).code == ResultCode.advice_limit_reached


async def test_reset(service):
    await service.start_game(UID, TUTORIAL)
    assert (await service.reset(UID, TUTORIAL)).ok
    assert (await service.reset(UID, TUTORIAL)).code == ResultCode.session_not_found
