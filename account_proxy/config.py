from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    USER_API: str = "https://user-api-example.com"
    USER_API_TIMEOUT: float = 10.0
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Cache
    USE_CACHE: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "cache:"
    CACHE_SEGMENT_USER: str = "users"
    CACHE_TTL_USER: int = 300
    CACHE_STALE_USER: int = 60
    CACHE_STALE_TIMEOUT: float = 1.0

    # Mailing list
    MAILCHIMP_KEY: str = ""
    MAILING_LIST_ID: str = "e17fe5d778"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
