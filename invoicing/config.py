from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from invoicing.currency import CURRENCIES
from invoicing.templates import template_ids


def _parse_int(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True)
class Settings:
    db_path: str = "data/invoicing.db"
    log_level: str = "INFO"
    default_currency: str = "USD"
    default_template_id: str = "professional"
    default_due_in_days: int = 30
    store_max_attempts: int = 1
    auth_backend: str = "static"
    auth_base_url: str | None = None
    auth_access_token: str | None = None
    auth_static_user_id: str = "local-user"
    auth_timeout_seconds: int = 10
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        default_currency = os.getenv("DEFAULT_CURRENCY", "USD").strip().upper()
        if default_currency not in {c.code for c in CURRENCIES}:
            raise ValueError(f"DEFAULT_CURRENCY is not a supported currency: {default_currency}")

        default_template_id = os.getenv("DEFAULT_TEMPLATE_ID", "professional").strip().lower()
        if default_template_id not in template_ids():
            raise ValueError(
                f"DEFAULT_TEMPLATE_ID must be one of: {', '.join(template_ids())}"
            )

        auth_backend = os.getenv("AUTH_BACKEND", "static").strip().lower()
        if auth_backend not in {"static", "http"}:
            raise ValueError("AUTH_BACKEND must be one of: static, http")

        auth_base_url = os.getenv("AUTH_BASE_URL")
        auth_access_token = os.getenv("AUTH_ACCESS_TOKEN")
        if auth_backend == "http":
            missing = [
                key
                for key, value in {
                    "AUTH_BASE_URL": auth_base_url,
                    "AUTH_ACCESS_TOKEN": auth_access_token,
                }.items()
                if not value or not value.strip()
            ]
            if missing:
                raise ValueError(
                    f"Missing required environment variable(s) for AUTH_BACKEND=http: {', '.join(missing)}"
                )

        return cls(
            db_path=os.getenv("INVOICING_DB_PATH", "data/invoicing.db"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            default_currency=default_currency,
            default_template_id=default_template_id,
            default_due_in_days=_parse_int("DEFAULT_DUE_IN_DAYS", 30, minimum=1),
            store_max_attempts=_parse_int("STORE_MAX_ATTEMPTS", 1, minimum=1),
            auth_backend=auth_backend,
            auth_base_url=auth_base_url.strip().rstrip("/") if auth_base_url else None,
            auth_access_token=auth_access_token.strip() if auth_access_token else None,
            auth_static_user_id=os.getenv("AUTH_STATIC_USER_ID", "local-user"),
            auth_timeout_seconds=_parse_int("AUTH_TIMEOUT_SECONDS", 10, minimum=1),
            api_host=os.getenv("API_HOST", "127.0.0.1"),
            api_port=_parse_int("API_PORT", 8000, minimum=1),
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
