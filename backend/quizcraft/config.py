"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    DATABASE_URL: str
    MAX_UPLOAD_BYTES: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    OPENAI_API_KEY: str
    GPT_MODEL: str
    GENERATION_MAX_RETRIES: int
    GENERATION_RETRY_DELAY_SECONDS: float
    GENERATION_CONTENT_LIMIT: int
    GENERATE_RATE_LIMIT_PER_WINDOW: int
    GENERATE_RATE_LIMIT_WINDOW_SECONDS: int
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'quizcraft.db'}")
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
        self.GENERATION_MAX_RETRIES = int(os.getenv("GENERATION_MAX_RETRIES", "3"))
        self.GENERATION_RETRY_DELAY_SECONDS = float(os.getenv("GENERATION_RETRY_DELAY_SECONDS", "2.0"))
        self.GENERATION_CONTENT_LIMIT = int(os.getenv("GENERATION_CONTENT_LIMIT", "8000"))
        self.GENERATE_RATE_LIMIT_PER_WINDOW = int(os.getenv("GENERATE_RATE_LIMIT_PER_WINDOW", "100"))
        self.GENERATE_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("GENERATE_RATE_LIMIT_WINDOW_SECONDS", "900"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.GENERATION_MAX_RETRIES < 0:
            raise RuntimeError("GENERATION_MAX_RETRIES must be >= 0")
        if self.GENERATION_RETRY_DELAY_SECONDS < 0:
            raise RuntimeError("GENERATION_RETRY_DELAY_SECONDS must be >= 0")


settings = Settings()
