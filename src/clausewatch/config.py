import os
from functools import lru_cache
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[2]


def _load_env_file_if_present() -> None:
    env_file = BASE_DIR / ".env"
    if not env_file.exists():
        return
    try:
        lines = env_file.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key or key in os.environ:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ[key] = value


_load_env_file_if_present()


def _default_runtime_dir() -> Path:
    return BASE_DIR / "data"


class Settings:
    def __init__(self) -> None:
        self.app_name: str = os.getenv("APP_NAME", "Clausewatch")
        self.app_env: str = os.getenv("APP_ENV", "dev")
        self.runtime_dir: Path = Path(os.getenv("RUNTIME_DIR", str(_default_runtime_dir()))).expanduser()
        default_db_path: Path = self.runtime_dir / "clausewatch.db"
        self.database_url: str = os.getenv("DATABASE_URL", f"sqlite:///{default_db_path.as_posix()}")
        self.request_timeout_seconds: int = int(os.getenv("REQUEST_TIMEOUT_SECONDS", "60"))
        self.firecrawl_api_key: str = os.getenv("FIRECRAWL_API_KEY", "")
        self.firecrawl_base_url: str = os.getenv("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev").rstrip("/")
        self.anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
        self.anthropic_model: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
        self.anthropic_base_url: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com").rstrip("/")
        self.extraction_max_tokens: int = int(os.getenv("EXTRACTION_MAX_TOKENS", "4096"))
        # Bearer token expected by the scheduled monitor trigger. Empty disables the endpoint.
        self.cron_secret: str = os.getenv("CRON_SECRET", "")


@lru_cache
def get_settings() -> Settings:
    return Settings()
