from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Consultancy Directory"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"  # "development", "test" or "production"
    LOG_LEVEL: str = "INFO"

    # Relational store used by the SQL backend
    DATABASE_URL: str = "sqlite:///./directory.db"

    # Hosted backend (PostgREST + auth)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_JWT_SECRET: str = ""  # Must be set via environment variable
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # Frontend URL for CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Resilient query wrapper
    CIRCUIT_FAILURE_THRESHOLD: int = 3
    CIRCUIT_COOLDOWN_SECONDS: float = 30.0
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY_MS: int = 1000

    # Bulk upload
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024  # 5MB
    MAX_FINISHED_UPLOAD_JOBS: int = 50

    # Worker threads for blocking database sessions
    THREADPOOL_MAX_WORKERS: int = 40

    # New reviews start "pending" instead of going live
    REVIEWS_REQUIRE_APPROVAL: bool = False

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
