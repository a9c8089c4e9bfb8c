from functools import lru_cache

from pydantic_settings import BaseSettings

SCORING_ENV_PREFIX = "SCORING_"


class ScoringSettings(BaseSettings):
    model_config = {"env_prefix": SCORING_ENV_PREFIX}

    # Number of categories kept per sample when a request sets no `best`
    default_best: int = 1
    # Neighbors returned per roi when searching the similarity index
    search_nn: int = 10
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> ScoringSettings:
    return ScoringSettings()
