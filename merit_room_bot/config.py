from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()
# Environment overlay, e.g. `.env.production` when BOT_ENV=production.
load_dotenv(f".env.{os.getenv('BOT_ENV', 'development').strip() or 'development'}")


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


@dataclass(slots=True)
class Settings:
    discord_token: str
    room_channel_id: int

    merit_threshold: float
    stale_after_ms: int
    verify_challenge_word: str
    cleanup_delay_seconds: float
    transport_timeout_seconds: float
    recheck_sweep_seconds: int

    ledger_api_url: str
    ledger_api_token: str
    ledger_timeout_seconds: int

    store_backend: str
    sqlite_path: Path
    store_postgres_dsn: str

    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        sqlite_path = Path(_env_str("SQLITE_PATH", "./data/merit_room.db")).expanduser()
        return cls(
            discord_token=_clean_token(_env_str("DISCORD_TOKEN", "", aliases=("BOT_TOKEN",))),
            room_channel_id=_env_int("ROOM_CHANNEL_ID", 0, aliases=("CHAT_ID", "CHATID")),
            merit_threshold=_env_float("MERIT_THRESHOLD", 30000.0),
            stale_after_ms=_env_int("STALE_AFTER_MS", 24 * 60 * 60 * 1000),
            verify_challenge_word=_env_str("VERIFY_CHALLENGE_WORD", "verify"),
            cleanup_delay_seconds=_env_float("CLEANUP_DELAY_SECONDS", 30.0),
            transport_timeout_seconds=_env_float("TRANSPORT_TIMEOUT_SECONDS", 15.0),
            recheck_sweep_seconds=_env_int("RECHECK_SWEEP_SECONDS", 0),
            ledger_api_url=_env_str("LEDGER_API_URL", "http://127.0.0.1:5005"),
            ledger_api_token=_env_str("LEDGER_API_TOKEN", ""),
            ledger_timeout_seconds=_env_int("LEDGER_TIMEOUT_SECONDS", 20),
            store_backend=_env_str("STORE_BACKEND", "sqlite").lower(),
            sqlite_path=sqlite_path,
            store_postgres_dsn=_env_str("STORE_POSTGRES_DSN", ""),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required in .env")
        if self.room_channel_id <= 0:
            raise ValueError("ROOM_CHANNEL_ID is required in .env")
        if self.merit_threshold < 0:
            raise ValueError("MERIT_THRESHOLD must be >= 0")
        if self.stale_after_ms < 1000:
            raise ValueError("STALE_AFTER_MS must be >= 1000")
        if not self.verify_challenge_word:
            raise ValueError("VERIFY_CHALLENGE_WORD cannot be empty")
        if self.cleanup_delay_seconds < 0:
            raise ValueError("CLEANUP_DELAY_SECONDS must be >= 0")
        if self.transport_timeout_seconds <= 0:
            raise ValueError("TRANSPORT_TIMEOUT_SECONDS must be > 0")
        if self.recheck_sweep_seconds < 0:
            raise ValueError("RECHECK_SWEEP_SECONDS must be >= 0 (0 disables the sweep)")
        if self.recheck_sweep_seconds and self.recheck_sweep_seconds < 60:
            raise ValueError("RECHECK_SWEEP_SECONDS must be 0 or >= 60")
        if not self.ledger_api_url:
            raise ValueError("LEDGER_API_URL is required in .env")
        if self.ledger_timeout_seconds < 1:
            raise ValueError("LEDGER_TIMEOUT_SECONDS must be >= 1")
        if self.store_backend not in {"sqlite", "postgres"}:
            raise ValueError("STORE_BACKEND must be 'sqlite' or 'postgres'")
        if self.store_backend == "postgres" and not self.store_postgres_dsn:
            raise ValueError("STORE_POSTGRES_DSN is required when STORE_BACKEND=postgres")
