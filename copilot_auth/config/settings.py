import logging
from dataclasses import dataclass
from functools import lru_cache
from os import getenv
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "Iv1.b507a08c87ecfe98"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "copilot-auth"


@dataclass
class Settings:
    client_id: str = DEFAULT_CLIENT_ID
    scope: str = "read:user"
    github_base_url: str = "https://github.com"
    api_base_url: str = "https://api.github.com"

    data_dir: Path = DEFAULT_DATA_DIR
    token_filename: str = "github_token"
    github_token: str | None = None

    refresh_buffer_seconds: int = 300
    refresh_lead_seconds: int = 60

    http_timeout_seconds: float = 30.0
    http_max_retries: int = 3
    user_agent: str = "copilot-auth/0.1.0"
    editor_version: str = "vscode/1.95.0"
    editor_plugin_version: str = "copilot-chat/0.26.7"
    api_version: str = "2025-04-01"

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def token_path(self) -> Path:
        return Path(self.data_dir) / self.token_filename


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    def _as_bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}

    def _as_int(name: str, default: int, minimum: int = 0) -> int:
        raw = getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
        if value < minimum:
            raise ValueError(f"{name} must be >= {minimum}, got {value}")
        return value

    timeout_raw = getenv("COPILOT_AUTH_HTTP_TIMEOUT_SECONDS", "30")
    try:
        http_timeout = float(timeout_raw)
    except ValueError as exc:
        raise ValueError(
            f"COPILOT_AUTH_HTTP_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}"
        ) from exc

    data_dir = getenv("COPILOT_AUTH_DATA_DIR")
    github_token = (getenv("GITHUB_TOKEN") or "").strip() or None
    if github_token:
        logger.info("GITHUB_TOKEN is set; stored credential will not be consulted")

    return Settings(
        client_id=getenv("COPILOT_AUTH_CLIENT_ID", DEFAULT_CLIENT_ID),
        scope=getenv("COPILOT_AUTH_SCOPE", "read:user"),
        github_base_url=getenv("COPILOT_AUTH_GITHUB_URL", "https://github.com").rstrip("/"),
        api_base_url=getenv("COPILOT_AUTH_API_URL", "https://api.github.com").rstrip("/"),
        data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
        token_filename=getenv("COPILOT_AUTH_TOKEN_FILE", "github_token"),
        github_token=github_token,
        refresh_buffer_seconds=_as_int("COPILOT_AUTH_REFRESH_BUFFER_SECONDS", 300),
        refresh_lead_seconds=_as_int("COPILOT_AUTH_REFRESH_LEAD_SECONDS", 60),
        http_timeout_seconds=http_timeout,
        http_max_retries=_as_int("COPILOT_AUTH_HTTP_MAX_RETRIES", 3, minimum=1),
        user_agent=getenv("COPILOT_AUTH_USER_AGENT", "copilot-auth/0.1.0"),
        editor_version=getenv("COPILOT_AUTH_EDITOR_VERSION", "vscode/1.95.0"),
        editor_plugin_version=getenv("COPILOT_AUTH_EDITOR_PLUGIN_VERSION", "copilot-chat/0.26.7"),
        api_version=getenv("COPILOT_AUTH_API_VERSION", "2025-04-01"),
        log_level=getenv("COPILOT_AUTH_LOG_LEVEL", "INFO").upper(),
        log_json=_as_bool(getenv("COPILOT_AUTH_LOG_JSON"), False),
    )
