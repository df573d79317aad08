from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import ClassVar, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    """Application configuration loaded from environment variables."""

    DEFAULT_PAGE_QUOTAS: ClassVar[Dict[str, int]] = {
        "starter": 25,
        "plus": 250,
        "growth": 500,
    }
    PRODUCTION_ENVIRONMENTS: ClassVar[frozenset] = frozenset({"production", "prod"})

    logger: logging.Logger = field(init=False)
    LOG_TO_FILE: bool = field(init=False)
    LOG_FILE_PATH: str = field(init=False)
    LOG_LEVEL: str = field(init=False)

    APP_ENV: str = field(init=False)

    DATABASE_URL: str = field(init=False)
    REDIS_URL: str = field(init=False)

    DEFAULT_TIER: str = field(init=False)
    PLAN_PAGE_QUOTAS: Dict[str, int] = field(init=False)
    PLAN_STRIPE_PRICE_IDS: Dict[str, Optional[str]] = field(init=False)

    USAGE_QUOTA_BYPASS: bool = field(init=False)

    API_LISTEN: str = field(init=False)
    API_PORT: int = field(init=False)

    def __post_init__(self) -> None:
        self.LOG_TO_FILE = self._env_flag("LOG_TO_FILE", default=False)
        self.LOG_FILE_PATH = os.getenv("LOG_FILE_PATH", "page_quota.log")
        self.LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
        self.logger = self._configure_logging()

        self.APP_ENV = (os.getenv("APP_ENV") or "production").strip().lower()
        self._load_database_settings()
        self._load_redis_settings()
        self._load_plan_settings()
        self._load_quota_settings()
        self._load_api_settings()
        self._emit_warnings()

    @property
    def is_production(self) -> bool:
        return self.APP_ENV in self.PRODUCTION_ENVIRONMENTS

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------
    def _load_database_settings(self) -> None:
        db_url = os.getenv("DATABASE_URL", "sqlite:///./page_quota_dev.db")
        if not self._validate_database_url(db_url):
            raise ValueError(f"Invalid DATABASE_URL: {db_url}")
        self.DATABASE_URL = db_url

    def _load_redis_settings(self) -> None:
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
        if not redis_url.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(f"Invalid REDIS_URL: {redis_url}")
        self.REDIS_URL = redis_url

    def _load_plan_settings(self) -> None:
        quotas: Dict[str, int] = {}
        for tier, default_quota in self.DEFAULT_PAGE_QUOTAS.items():
            quotas[tier] = self._positive_int(
                f"PAGE_QUOTA_{tier.upper()}", default_quota
            )
        self.PLAN_PAGE_QUOTAS = quotas

        default_tier = (os.getenv("DEFAULT_TIER") or "starter").strip().lower()
        if default_tier not in quotas:
            self.logger.warning(
                "Unknown DEFAULT_TIER='%s'. Falling back to 'starter'.", default_tier
            )
            default_tier = "starter"
        self.DEFAULT_TIER = default_tier

        self.PLAN_STRIPE_PRICE_IDS = {
            "starter": None,
            "plus": self._read_optional("STRIPE_PRICE_PLUS_MONTHLY"),
            "growth": self._read_optional("STRIPE_PRICE_GROWTH_MONTHLY"),
        }

    def _load_quota_settings(self) -> None:
        requested = self._env_flag("USAGE_QUOTA_BYPASS", default=False)
        if requested and self.is_production:
            self.logger.warning(
                "USAGE_QUOTA_BYPASS is ignored in the '%s' environment.", self.APP_ENV
            )
            requested = False
        self.USAGE_QUOTA_BYPASS = requested

    def _load_api_settings(self) -> None:
        self.API_LISTEN = os.getenv("API_LISTEN", "0.0.0.0")
        self.API_PORT = self._resolve_api_port()

    def _emit_warnings(self) -> None:
        if "sqlite" in self.DATABASE_URL and self.is_production:
            self.logger.warning(
                "Using a local SQLite database in production. Set DATABASE_URL."
            )

        if self.USAGE_QUOTA_BYPASS:
            self.logger.warning(
                "Page quota bypass is enabled (APP_ENV=%s). Quota checks always pass.",
                self.APP_ENV,
            )

    @staticmethod
    def _validate_database_url(url: str) -> bool:
        valid_schemes = ("sqlite", "postgresql", "mysql", "oracle")
        if "://" not in url:
            return False

        scheme = url.split("://", 1)[0].split("+", 1)[0]
        return scheme in valid_schemes

    # ------------------------------------------------------------------
    # Utility helpers
    # ------------------------------------------------------------------
    def _configure_logging(self) -> logging.Logger:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handlers: List[logging.Handler] = []

        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        handlers.append(stream_handler)

        if self.LOG_TO_FILE:
            if ".." in self.LOG_FILE_PATH or self.LOG_FILE_PATH.startswith("/"):
                raise ValueError("Invalid log file path")
            try:
                file_handler = logging.FileHandler(self.LOG_FILE_PATH, encoding="utf-8")
            except OSError as exc:  # pragma: no cover - depends on environment
                raise ValueError(
                    f"Could not open log file '{self.LOG_FILE_PATH}': {exc}"
                ) from exc
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        level = logging.getLevelName(self.LOG_LEVEL)
        if not isinstance(level, int):
            level = logging.INFO

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        for handler in handlers:
            root_logger.addHandler(handler)

        configured_logger = logging.getLogger("page_quota")
        configured_logger.propagate = True
        return configured_logger

    def _positive_int(self, name: str, default: int) -> int:
        raw_value = os.getenv(name)
        if raw_value is None or not raw_value.strip():
            return default
        try:
            parsed = int(raw_value)
            if parsed <= 0:
                raise ValueError("value must be positive")
        except ValueError as exc:
            self.logger.warning(
                "Invalid %s='%s'. Using %s. Error: %s", name, raw_value, default, exc
            )
            return default
        return parsed

    def _resolve_api_port(self) -> int:
        fallback_port = 8000
        candidates = [
            ("PORT", os.getenv("PORT")),
            ("API_PORT", os.getenv("API_PORT")),
        ]

        for name, raw_value in candidates:
            if raw_value is None or raw_value.strip() == "":
                continue
            try:
                port = int(raw_value)
            except ValueError as exc:
                raise ValueError(
                    f"Environment variable {name} must be an integer, got '{raw_value}'."
                ) from exc
            if port <= 0:
                raise ValueError(
                    f"Environment variable {name} must be positive, got '{raw_value}'."
                )
            return port

        return fallback_port

    @staticmethod
    def _env_flag(name: str, *, default: bool = False) -> bool:
        value = os.getenv(name)
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    @staticmethod
    def _read_optional(name: str) -> Optional[str]:
        value = os.getenv(name)
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Returns the cached settings instance."""

    return Settings()
