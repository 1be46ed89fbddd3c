from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    app_name: str = "SwapSeva API"
    debug: bool = False
    environment: str = "development"
    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    jwt_secret: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 60 * 24

    # Attempts for version-checked chat writes before giving up
    write_retries: int = 5

    notification_page_size: int = 20
    notification_max_page_size: int = 100

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
