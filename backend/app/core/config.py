"""Application configuration.

Environment variables override all defaults.
Secrets (bot token, Groq key, wallet provider key) must come from .env, never from code.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv


# Load .env for local development
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _csv(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./obverse.db")

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _csv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )

    # Telegram Bot (Must be set via .env, never in code)
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    TELEGRAM_TOKEN_TIMEOUT_SECONDS: float = float(os.getenv("TELEGRAM_TOKEN_TIMEOUT_SECONDS", "10"))
    TELEGRAM_POLL_RETRIES: int = int(os.getenv("TELEGRAM_POLL_RETRIES", "3"))
    TELEGRAM_POLL_BACKOFF_SECONDS: float = float(os.getenv("TELEGRAM_POLL_BACKOFF_SECONDS", "2"))

    # Groq API Key (Must be set via .env, never in code)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")
    GROQ_MODEL: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

    # "rules" = deterministic orchestrator, "llm" = Groq agent with regex fast paths
    AGENT_MODE: str = os.getenv("AGENT_MODE", "rules")

    # Mantle network
    MANTLE_RPC_URL: str = os.getenv("MANTLE_RPC_URL", "https://rpc.mantle.xyz")
    BALANCE_RPC_URL: str = os.getenv("BALANCE_RPC_URL", "https://1rpc.io/mantle")
    EXPLORER_URL: str = os.getenv("EXPLORER_URL", "https://explorer.mantle.xyz")
    EXPLORER_API_URL: str = os.getenv("EXPLORER_API_URL", "https://explorer.mantle.xyz/api")

    # Custodial wallet provider (Para)
    PARA_API_KEY: str = os.getenv("PARA_API_KEY", "")
    PARA_API_URL: str = os.getenv("PARA_API_URL", "https://api.beta.getpara.com")
    PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))

    # Payment links
    LINK_BASE_URL: str = os.getenv("LINK_BASE_URL", "https://obverse-ui.vercel.app")

    # Conversation sessions: 15 minutes of inactivity, last 10 messages
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "900"))
    MEMORY_MAX_ENTRIES: int = int(os.getenv("MEMORY_MAX_ENTRIES", "10"))
    # "memory" or "database"
    SESSION_BACKEND: str = os.getenv("SESSION_BACKEND", "memory")

    # API server (run_server.py)
    API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"


settings = Settings()
