"""
Application settings.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Session store
    DATABASE_URL: str = "sqlite:///./data/splitsmart.db"

    # Environment
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Files
    DATA_DIR: str = "./data"

    # Origin the browser comes back to after checkout
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    # LLM (optional; demo receipt + heuristic suggestions without a key)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-pro"
    GEMINI_FALLBACK_MODEL: str = "gemini-2.5-flash"
    SUGGESTION_MODEL: str = "gemini-2.5-flash"
    SUGGESTION_TIMEOUT_SECONDS: float = 10.0
    RECEIPT_TIMEOUT_SECONDS: float = 60.0

    # Hosted checkout
    FLOWGLAD_API_URL: str = "https://app.flowglad.com/api/v1"
    FLOWGLAD_SECRET_KEY: str = ""
    # One-cent unit price; checkout quantity is the amount owed in cents
    FLOWGLAD_PRICE_ID: str = ""
    PAYMENTS_DEMO: bool = False

    # Join codes
    CODE_LENGTH: int = 6
    CODE_MAX_ATTEMPTS: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
