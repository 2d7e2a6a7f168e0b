import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from config/.env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    UPSTREAM_URL: str = os.getenv(
        "UPSTREAM_URL",
        "https://router.huggingface.co/replicate/v1/models/"
        "stability-ai/stable-diffusion-3.5-large/predictions",
    )
    HF_TOKEN: str | None = os.getenv("HF_TOKEN") or os.getenv("HUGGING_FACE_TOKEN")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")

    # seconds
    UPSTREAM_TIMEOUT: float = float(os.getenv("UPSTREAM_TIMEOUT", "120"))
    POLL_TIMEOUT: float = float(os.getenv("POLL_TIMEOUT", "10"))
    IMAGE_FETCH_TIMEOUT: float = float(os.getenv("IMAGE_FETCH_TIMEOUT", "30"))
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "180"))
    ACCOUNT_LOCK_TIMEOUT: float = float(os.getenv("ACCOUNT_LOCK_TIMEOUT", "240"))

    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "2.0"))
    POLL_MAX_ATTEMPTS: int = int(os.getenv("POLL_MAX_ATTEMPTS", "30"))

    BASE64_MIN_LENGTH: int = int(os.getenv("BASE64_MIN_LENGTH", "100"))
    STRICT_BASE64: bool = _env_bool("STRICT_BASE64")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
