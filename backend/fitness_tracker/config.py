"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe (the secret key has no default: a missing key aborts startup)
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CHECK_ON_STARTUP: bool = True

    # Frontend URL used for checkout redirects and CORS
    CLIENT_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "https://localhost:3000",
    ]
    ALLOWED_ORIGIN_REGEX: str = r"https://.*\.vercel\.app"

    # External analysis workflow (n8n webhook)
    ANALYSIS_WEBHOOK_URL: str = "http://localhost:5678/webhook/workout-analysis"
    ANALYSIS_TIMEOUT_SECONDS: float = 30.0

    # Workout storage
    DATABASE_URL: str = "sqlite:///./fitness_tracker.db"
    WORKOUT_STORE_BACKEND: Literal["database", "file"] = "database"
    WORKOUTS_FILE: str = "workouts.json"

    # Supabase-issued access tokens (identity checks are skipped when unset)
    SUPABASE_JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    @property
    def cors_origins(self) -> List[str]:
        origins = list(self.ALLOWED_ORIGINS)
        if self.CLIENT_URL not in origins:
            origins.append(self.CLIENT_URL)
        return origins

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create a global settings instance for direct import
settings = get_settings()
