from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator

from .models import Credentials


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

BBVA_BASE_URL = "https://www.bbvanetcash.pe"
BBVA_LOGIN_PATH = "/DFAUTH85/mult/KDPOSolicitarCredenciales_es.html"
# Login form submission endpoint; its status is what the login classifier reads.
BBVA_SUBMISSION_PATH = "/DFAUTH85/slod_pe_web/DFServlet"


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so most runs only need `.env`; YAML remains an optional override.
    """
    return {
        "banks": {
            "bbva": {
                "base_url": os.getenv("BBVA_BASE_URL", BBVA_BASE_URL),
                "accounts_url": os.getenv("BBVA_ACCOUNTS_URL", ""),
                "transactions_url": os.getenv("BBVA_TRANSACTIONS_URL", ""),
                "timeout_ms": _env_int("BBVA_TIMEOUT_MS", 30_000),
                "session_ttl_seconds": _env_int("BBVA_SESSION_TTL_SECONDS", 600),
                "headless": _env_bool("BBVA_HEADLESS", default=True),
                "credentials": {
                    "company_code": os.getenv("BBVA_COMPANY_CODE", ""),
                    "user_code": os.getenv("BBVA_USER_CODE", ""),
                    "password": os.getenv("BBVA_PASSWORD", ""),
                },
            },
        },
        "flatten": {
            "max_depth": _env_int("FLATTEN_MAX_DEPTH", 100),
        },
        "replay": {
            "har_path": os.getenv("REPLAY_HAR_PATH", ""),
            "passthrough": _env_bool("REPLAY_PASSTHROUGH", default=False),
            "max_redirects": _env_int("REPLAY_MAX_REDIRECTS", 10),
        },
        "retry": {
            "attempts": _env_int("RETRY_ATTEMPTS", 3),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
        },
        "debug_dir": os.getenv("DEBUG_DIR", "data/debug"),
    }


class CredentialsConfig(BaseModel):
    company_code: str = Field(default="", repr=False)
    user_code: str = Field(default="", repr=False)
    password: str = Field(default="", repr=False)

    def to_credentials(self) -> Credentials:
        return Credentials(company_code=self.company_code, user_code=self.user_code, password=self.password)


class BankConfig(BaseModel):
    """
    Per-bank portal settings. Portal latency varies, so every wait uses this bank's `timeout_ms`.

    `accounts_url` / `transactions_url` are optional: when empty, extraction reads whatever page
    the session is currently on.
    """

    base_url: str = BBVA_BASE_URL
    login_path: str = BBVA_LOGIN_PATH
    submission_path: str = BBVA_SUBMISSION_PATH
    accounts_url: str = ""
    transactions_url: str = ""
    timeout_ms: int = Field(default=30_000, gt=0)
    session_ttl_seconds: int = Field(default=600, gt=0)
    headless: bool = True
    credentials: CredentialsConfig = CredentialsConfig()

    @model_validator(mode="after")
    def _normalize_urls(self) -> "BankConfig":
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("base_url must be a full URL like 'https://www.bbvanetcash.pe'")
        self.base_url = base_url

        if self.login_path and not self.login_path.startswith(("/", "http")):
            self.login_path = "/" + self.login_path
        return self

    @property
    def login_url(self) -> str:
        if self.login_path.startswith("http"):
            return self.login_path
        return self.base_url + self.login_path


class BanksConfig(BaseModel):
    bbva: BankConfig = BankConfig()


class FlattenConfig(BaseModel):
    max_depth: int = Field(default=100, ge=1, le=1000)


class ReplayConfig(BaseModel):
    har_path: str = ""
    passthrough: bool = False
    max_redirects: int = Field(default=10, ge=0)


class RetryConfig(BaseModel):
    attempts: int = Field(default=3, ge=1)
    backoff_s: float = Field(default=2.0, ge=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""


class AppConfig(BaseModel):
    banks: BanksConfig = BanksConfig()
    flatten: FlattenConfig = FlattenConfig()
    replay: ReplayConfig = ReplayConfig()
    retry: RetryConfig = RetryConfig()
    logging: LoggingConfig = LoggingConfig()
    debug_dir: str = "data/debug"


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
