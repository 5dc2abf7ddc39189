# runtime_config.py
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

GOOGLE_CREDENTIAL_FIELDS = (
    "GOOGLE_SPREADSHEET_ID",
    "GOOGLE_PROJECT_ID",
    "GOOGLE_PRIVATE_KEY_ID",
    "GOOGLE_PRIVATE_KEY",
    "GOOGLE_CLIENT_EMAIL",
    "GOOGLE_CLIENT_ID",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def configure_logging(level: Optional[str] = None) -> None:
    resolved = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        parsed = int(str(os.getenv(name, str(default))).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default) or default
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass
class RuntimeConfig:
    """Service settings plus the in-memory credential store.

    Settings come from the environment once at start-up. Credentials set by
    admins at runtime override the environment, are last-write-wins and are
    lost on restart.
    """

    training_api_url: str = "http://localhost:8000"
    chat_timeout: float = 20.0
    search_timeout: float = 15.0
    completion_timeout: float = 10.0
    status_timeout: float = 3.0
    cache_ttl: float = 300.0
    conversation_ttl: float = 1800.0

    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    completion_temperature: float = 0.2
    completion_max_tokens: int = 400

    backup_path: str = "contact-submissions.xlsx"
    sheet_name: str = "Contact Submissions"

    admin_token: str = ""
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    rate_window: float = 10.0
    rate_limit: int = 100
    metrics_enabled: bool = True

    _google: Dict[str, str] = field(default_factory=dict, repr=False)
    _provider_keys: Dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        base_url = os.getenv("OPENAI_BASE_URL", "").strip()
        if base_url.lower() in ("", "none", "null"):
            base_url = ""
        training_url = (
            os.getenv("PYTHON_API_URL")
            or os.getenv("PYTHON_BACKEND_URL")
            or "http://localhost:8000"
        ).strip().rstrip("/")
        return cls(
            training_api_url=training_url,
            chat_timeout=_env_float("CHAT_TIMEOUT", 20.0),
            search_timeout=_env_float("SEARCH_TIMEOUT", 15.0),
            completion_timeout=_env_float("COMPLETION_TIMEOUT", 10.0),
            status_timeout=_env_float("STATUS_TIMEOUT", 3.0),
            cache_ttl=_env_float("CHAT_CACHE_TTL", 300.0),
            conversation_ttl=_env_float("CONVERSATION_TTL", 1800.0),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=base_url or None,
            completion_temperature=_env_float("COMPLETION_TEMPERATURE", 0.2),
            completion_max_tokens=_env_int("COMPLETION_MAX_TOKENS", 400),
            backup_path=os.getenv("CONTACT_BACKUP_PATH", "contact-submissions.xlsx"),
            sheet_name=os.getenv("CONTACT_SHEET_NAME", "Contact Submissions"),
            admin_token=os.getenv("ADMIN_TOKEN", ""),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            rate_window=_env_float("RATE_WINDOW", 10.0),
            rate_limit=_env_int("RATE_LIMIT", 100),
            metrics_enabled=os.getenv("METRICS_ENABLED", "1").lower() in _TRUE_VALUES,
        )

    # ========== CREDENTIAL STORE ==========
    def set_google_credentials(self, creds: Dict[str, Optional[str]]) -> None:
        for key in GOOGLE_CREDENTIAL_FIELDS:
            value = creds.get(key)
            if value:
                self._google[key] = str(value)

    def google_credentials(self) -> Dict[str, str]:
        merged = {}
        for key in GOOGLE_CREDENTIAL_FIELDS:
            value = self._google.get(key) or os.getenv(key, "")
            if value:
                merged[key] = value
        return merged

    def set_provider_key(self, provider: str, api_key: str) -> None:
        self._provider_keys[provider.lower()] = api_key.strip()

    def provider_key(self, provider: str = "openai") -> str:
        stored = self._provider_keys.get(provider.lower())
        if stored:
            return stored
        return os.getenv(f"{provider.upper()}_API_KEY", "").strip()
