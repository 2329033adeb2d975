from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Redis
    redis_url: str = "redis://localhost:6379/0"
    clock_state_key: str = "flight_simulation:clock_state"

    # API
    api_prefix: str = "/api/v1"
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["*"]

    # 外部规划器（重优化接口）
    planner_base_url: str = "http://localhost:8080"
    planner_path: str = "/api/algoritmo/diario/ejecutar"
    planner_timeout_s: float = 30.0

    # 时钟驱动
    driver_enabled: bool = False
    driver_interval_s: float = 1.0  # 真实时间tick间隔

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
