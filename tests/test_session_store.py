from finsim.domain.game_rules import GameMode
from finsim.session_store import session_key
from tests.helpers import make_session


def test_session_key_format():
    assert session_key("abc", GameMode.tutorial) == "game:session:abc:TUTORIAL"


async def test_save_and_load_round_trip(store, fake_redis):
    session = make_session(current_round=3, products_used=["DEPOSIT"])
    await store.save(session, 86_400)
    assert fake_redis.ttl["game:session:player-1:TUTORIAL"] == 86_400

    loaded = await store.load("player-1", GameMode.tutorial)
    assert loaded == session
    assert await store.exists("player-1", GameMode.tutorial)
    assert not await store.exists("player-1", GameMode.competition)


async def test_load_missing_session(store):
    assert await store.load("nobody", GameMode.tutorial) is None


async def test_delete(store):
    await store.save(make_session(), 60)
    assert await store.delete("player-1", GameMode.tutorial)
    assert not await store.delete("player-1", GameMode.tutorial)
