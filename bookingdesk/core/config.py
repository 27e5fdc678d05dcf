from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BOOKING_API_BASE_URL: str | None = None
    BOOKING_API_TOKEN: str | None = None
    HTTP_TIMEOUT_SECONDS: float = 15.0
    FETCH_LIMIT: int = 600

    PUSH_URL: str | None = None

    MIN_FETCH_INTERVAL_SECONDS: float = 3.0
    PUSH_DEBOUNCE_SECONDS: float = 5.0
    OFFLINE_RETRY_DELAY_SECONDS: float = 5.0

    SLOT_GRID_START: str = "10:00"
    SLOT_GRID_END: str = "16:30"
    SLOT_STEP_MINUTES: int = 30
    SLOTS_PER_TIME: int = 3

    CURRENT_USER_ID: str = "local-user"
    CURRENT_USER_NAME: str = "Current User"
    CURRENT_USER_ROLE: str = "admin"


settings = Settings()
