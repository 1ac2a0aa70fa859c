from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000"

    # Remote onboarding backend
    api_base_url: str = "http://localhost:8080/api"
    api_timeout_seconds: float = 30.0

    # Redis (wizard progress)
    redis_url: str = "redis://localhost:6379/0"
    progress_namespace: str = "onboarding"
    progress_ttl_seconds: int = 604800  # 7 days, 0 = never expire

    # Data viewer
    user_list_refresh_seconds: float = 10.0

    # Sessions
    session_cookie_name: str = "onboarding_session"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
