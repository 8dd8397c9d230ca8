from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # project root
ENV_PATH = BASE_DIR / ".env"

# Load .env into the process environment before Settings reads it
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
    )

    # GraphQL backend
    GRAPHQL_URL: str = "http://localhost:4000/graphql"
    GRAPHQL_TIMEOUT_SECONDS: float = 15.0

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""

    CURRENCY: str = "gbp"
    CURRENCY_SYMBOL: str = "£"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Header carrying the basket session id (guest or authenticated)
    SESSION_HEADER: str = "X-Basket-Session"


settings = Settings()
