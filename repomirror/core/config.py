# repomirror/core/config.py
import logging
import os
from dotenv import load_dotenv

load_dotenv()  # load from .env

class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./repomirror.db")

    GITHUB_API_URL: str = os.getenv("GITHUB_API_URL", "https://api.github.com")
    GITHUB_APP_ID: str = os.getenv("GITHUB_APP_ID", "")
    GITHUB_APP_PRIVATE_KEY: str = os.getenv("GITHUB_APP_PRIVATE_KEY", "")
    GITHUB_TIMEOUT: float = float(os.getenv("GITHUB_TIMEOUT", "30"))

    # base64-encoded 32 byte AES key
    ENCRYPTION_KEY: str = os.getenv("ENCRYPTION_KEY", "")

    # seconds before expires_at at which an installation token is renewed
    TOKEN_EXPIRY_MARGIN: int = int(os.getenv("TOKEN_EXPIRY_MARGIN", "60"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()


def configure_logging(level: str | None = None):
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
