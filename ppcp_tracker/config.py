"""Settings loaded from ``PPCP_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "PPCP"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(environ: Mapping[str, str], name: str, default: str) -> str:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path("ppcp.sqlite3")
    username: str = "admin"
    password: str = "admin"
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    # signs the session cookie; a random key per process when empty
    secret_key: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            db_path=Path(_env(env, _k("DB_PATH"), str(defaults.db_path))).expanduser(),
            username=_env(env, _k("USERNAME"), defaults.username),
            password=_env(env, _k("PASSWORD"), defaults.password),
            host=_env(env, _k("HOST"), defaults.host),
            port=_env_int(env, _k("PORT"), defaults.port),
            log_level=_env(env, _k("LOG_LEVEL"), defaults.log_level).upper(),
            secret_key=_env(env, _k("SECRET_KEY"), defaults.secret_key),
        )


__all__ = ["ENV_PREFIX", "Settings"]
