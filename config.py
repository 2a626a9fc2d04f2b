from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: Env = Env.local
    port: int = 8080
    log_level: str = "INFO"

    llm_api_key: str | None = None
    llm_base_url: str | None = None
    llm_model: str = "gpt-4o-mini"

    request_timeout: float = 30.0

    breaker_max_requests: int = 3
    breaker_interval: float = 60.0
    breaker_timeout: float = 30.0
    breaker_failure_threshold: int = 3
