import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.asyncio import Redis

from finsim.load_secrets import redis_db, redis_host, redis_port
from finsim.routers import game

logging.basicConfig(level=logging.DEBUG)


@asynccontextmanager
async def lifespan(app):
    """Open the Redis connection used for session snapshots.
    Expired sessions are dropped by Redis itself through the key TTL.
    """
    app.state.redis = Redis(
        host=redis_host, port=redis_port, db=redis_db, decode_responses=True, health_check_interval=30
    )
    logging.info(f"Start Server: redis={redis_host}:{redis_port}/{redis_db}")
    try:
        yield
    finally:
        await app.state.redis.aclose()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.include_router(game.game_router)
