import os
from dotenv import load_dotenv

from finsim.domain.game_rules import DEFAULT_STARTING_PARAMETERS, GameMode, StartingParameters

load_dotenv()

redis_host = os.getenv("REDIS_HOST", "redis")
redis_port = int(os.getenv("REDIS_PORT", "6379"))
redis_db = int(os.getenv("REDIS_DB", "0"))

# seconds
session_ttl_active = int(os.getenv("SESSION_TTL_ACTIVE", "86400"))
session_ttl_completed = int(os.getenv("SESSION_TTL_COMPLETED", "604800"))


def starting_parameters(mode: GameMode) -> StartingParameters:
    """Starting cash/salary/living for a mode, overridable with e.g. TUTORIAL_INITIAL_CASH."""
    mode = GameMode(mode)
    default = DEFAULT_STARTING_PARAMETERS[mode]
    prefix = mode.value
    return StartingParameters(
        initial_cash=int(os.getenv(f"{prefix}_INITIAL_CASH", default.initial_cash)),
        monthly_salary=int(os.getenv(f"{prefix}_MONTHLY_SALARY", default.monthly_salary)),
        monthly_living=int(os.getenv(f"{prefix}_MONTHLY_LIVING", default.monthly_living)),
    )


if __name__ == "__main__":
    print(redis_host, redis_port, redis_db, session_ttl_active, session_ttl_completed)
