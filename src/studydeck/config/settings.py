from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    backend: str = os.getenv("STUDYDECK_BACKEND", "sqlite").strip().lower()
    sqlite_path: str = os.getenv("STUDYDECK_SQLITE_PATH", "studydeck.db")
    log_level: str = os.getenv("STUDYDECK_LOG_LEVEL", "INFO").upper()

    appwrite_endpoint: str = os.getenv("APPWRITE_ENDPOINT", "")
    appwrite_project_id: str = os.getenv("APPWRITE_PROJECT_ID", "")
    appwrite_api_key: str = os.getenv("APPWRITE_API_KEY") or os.getenv("APPWRITE_FUNCTION_API_KEY", "")
    appwrite_database_id: str = os.getenv("APPWRITE_DATABASE_ID", "")

    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")

    # Calendar day keys are computed in this zone; empty means the host's local zone.
    local_timezone: str = os.getenv("STUDYDECK_TIMEZONE", "")
    upcoming_window_days: int = int(os.getenv("STUDYDECK_UPCOMING_WINDOW_DAYS", "14"))

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )
    cors_allow_origin_regex: str = os.getenv(
        "CORS_ALLOW_ORIGIN_REGEX",
        r"^https?:\/\/(localhost|127\.0\.0\.1)(:\d+)?$",
    )


settings = Settings()
