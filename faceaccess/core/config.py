import os
from pathlib import Path

from dotenv import load_dotenv

# Structure: faceaccess/core/config.py -> <project root>/.env
project_root = Path(__file__).parent.parent.parent
env_file = project_root / ".env"

if env_file.exists():
    load_dotenv(env_file)


class Settings:
    app_name: str = os.getenv("APP_NAME", "face-access-control")
    env: str = os.getenv("ENV", "dev")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database Configuration
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: int = int(os.getenv("DB_PORT", "5432"))
    db_user: str = os.getenv("DB_USER", "postgres")
    db_password: str = os.getenv("DB_PASSWORD", "postgres")
    db_name: str = os.getenv("DB_NAME", "accessdb")
    database_url: str = os.getenv(
        "DATABASE_URL",
        f"postgresql+asyncpg://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', 'postgres')}@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}/{os.getenv('DB_NAME', 'accessdb')}"
    )
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # MinIO Configuration
    minio_endpoint: str = os.getenv("MINIO_ENDPOINT", "localhost:9000")
    minio_access_key: str = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
    minio_secret_key: str = os.getenv("MINIO_SECRET_KEY", "minioadmin")
    minio_secure: bool = os.getenv("MINIO_SECURE", "false").lower() == "true"
    minio_bucket_faces: str = os.getenv("MINIO_BUCKET_FACES", "face-images")
    # Base used to build public object URLs, e.g. behind a CDN or reverse proxy
    minio_public_url: str | None = os.getenv("MINIO_PUBLIC_URL")

    # Gemini suggestion service
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    gemini_base_url: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    gemini_timeout_secs: float = float(os.getenv("GEMINI_TIMEOUT_SECS", "15"))

    # Face matching / access decision knobs
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "128"))
    registered_match_threshold: float = float(os.getenv("REGISTERED_MATCH_THRESHOLD", "0.5"))
    observed_update_threshold: float = float(os.getenv("OBSERVED_UPDATE_THRESHOLD", "0.35"))
    denied_attempts_threshold: int = int(os.getenv("DENIED_ATTEMPTS_THRESHOLD", "3"))
    observed_access_ttl_hours: int = int(os.getenv("OBSERVED_ACCESS_TTL_HOURS", "24"))

    # Dashboard counters
    pending_review_access_count: int = int(os.getenv("PENDING_REVIEW_ACCESS_COUNT", "5"))


settings = Settings()
