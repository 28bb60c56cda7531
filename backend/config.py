# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    FRONTEND_URL: str = "http://localhost:5173"

    # External product catalog (OpenFoodFacts search endpoint)
    CATALOG_API_URL: str = "https://world.openfoodfacts.org/cgi/search.pl"
    CATALOG_TIMEOUT_SECONDS: float = 8.0
    CATALOG_MAX_RESULTS: int = 10
    CATALOG_USER_AGENT: str = "OrganicMart-Ecommerce/1.0 (+https://organicmart.com)"

    # Search and checkout behaviour
    SEARCH_MAX_LIMIT: int = 50
    DEFAULT_COUNTRY: str = "India"
    RESTOCK_ON_CANCEL: bool = False
    ENFORCE_STATUS_TRANSITIONS: bool = False

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

settings = Settings()
