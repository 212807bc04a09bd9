from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from loguru import logger
from dotenv import load_dotenv


_DEFAULT_ORIGINS = ("http://localhost:8081", "http://localhost:3001")


def load_env() -> None:
    # Project-root .env first, then CWD; values already in the environment win
    here = Path(__file__).resolve().parents[1]
    for env_path in (here / ".env", Path.cwd() / ".env"):
        if env_path.is_file():
            load_dotenv(dotenv_path=str(env_path), override=False)
            logger.debug(f"Loaded env from {env_path}")
            break


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}; using default {default}")
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}; using default {default}")
        return default


def _origins_env(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return _DEFAULT_ORIGINS
    return tuple(o.strip() for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    """Process configuration.

    Env vars:
      - GEMINI_API_KEY / OPENAI_API_KEY (optional; enable the external providers)
      - GEMINI_MODEL (default: chat-bison-001)
      - OPENAI_MODEL (default: gpt-3.5-turbo)
      - HOST / PORT (default: 0.0.0.0 / 3001)
      - PROVIDER_TIMEOUT_S (default: 20)
      - CORS_ORIGINS (comma separated)
      - LOG_LEVEL (default: INFO)
      - PROMPTS_DIR (optional persona prompt overrides)
    """

    gemini_api_key: str = ""
    openai_api_key: str = ""
    gemini_model: str = "chat-bison-001"
    openai_model: str = "gpt-3.5-turbo"
    host: str = "0.0.0.0"
    port: int = 3001
    provider_timeout_s: float = 20.0
    cors_origins: Tuple[str, ...] = _DEFAULT_ORIGINS
    log_level: str = "INFO"
    prompts_dir: Optional[str] = None

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key)


def settings_from_env() -> Settings:
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL") or "chat-bison-001",
        openai_model=os.getenv("OPENAI_MODEL") or "gpt-3.5-turbo",
        host=os.getenv("HOST") or "0.0.0.0",
        port=_int_env("PORT", 3001),
        provider_timeout_s=_float_env("PROVIDER_TIMEOUT_S", 20.0),
        cors_origins=_origins_env("CORS_ORIGINS"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        prompts_dir=os.getenv("PROMPTS_DIR") or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_env()
    return settings_from_env()
