"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:4200,http://127.0.0.1:3000"


def _csv(raw: str):
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_MINUTES: int
    ALLOW_INSECURE_JWT: bool
    CORS_ALLOWED_ORIGINS: list
    CORS_MAX_AGE: int
    ADMIN_USERNAME: str
    ADMIN_PASSWORD: str
    LOGIN_RATE_LIMIT_PER_MIN: int
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'biblioteca.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.CORS_ALLOWED_ORIGINS = _csv(os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS))
        self.CORS_MAX_AGE = int(os.getenv("CORS_MAX_AGE", "3600"))
        self.ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "").strip()
        self.ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")
        self.LOGIN_RATE_LIMIT_PER_MIN = int(os.getenv("LOGIN_RATE_LIMIT_PER_MIN", "30"))
        self.LOGIN_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_MINUTES <= 0:
            raise RuntimeError("JWT_EXPIRE_MINUTES must be positive")
        if bool(self.ADMIN_USERNAME) != bool(self.ADMIN_PASSWORD):
            raise RuntimeError("ADMIN_USERNAME and ADMIN_PASSWORD must be set together")


settings = Settings()
