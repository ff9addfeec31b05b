from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    API_KEY: str
    LOG_LEVEL: str = "INFO"
    DB_ECHO: bool = False

    # Observed schedule lookups ignore effective_from/effective_to.
    # Flip this to make the resolver honour them.
    SCHEDULE_RESPECT_EFFECTIVE_WINDOW: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
