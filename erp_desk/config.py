"""Configuration management for the ERP desk client."""
import os
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Load environment variables
load_dotenv()


@dataclass
class StoreConfig:
    """Remote document store configuration."""
    endpoint: str = field(default_factory=lambda: os.getenv("ERP_STORE_ENDPOINT", ""))
    container: str = field(
        default_factory=lambda: os.getenv("ERP_STORE_CONTAINER", "iCloud.com.diamonddesk.erp")
    )
    database: str = field(default_factory=lambda: os.getenv("ERP_STORE_DATABASE", "private"))
    api_token: str = field(default_factory=lambda: os.getenv("ERP_STORE_API_TOKEN", ""))
    timeout: float = field(
        default_factory=lambda: float(os.getenv("ERP_STORE_TIMEOUT", "30"))
    )

    def is_configured(self) -> bool:
        return all([self.endpoint, self.container, self.api_token])


@dataclass
class FinancialConfig:
    """Financial defaults."""
    default_currency: str = field(default_factory=lambda: os.getenv("ERP_DEFAULT_CURRENCY", "USD"))
    default_due_days: int = field(
        default_factory=lambda: int(os.getenv("ERP_DEFAULT_DUE_DAYS", "30"))
    )
    # Window used for the "upcoming invoices" list
    upcoming_days: int = field(
        default_factory=lambda: int(os.getenv("ERP_UPCOMING_DAYS", "7"))
    )
    recent_items: int = 5


@dataclass
class UIConfig:
    """View-model behaviour."""
    search_debounce_ms: int = field(
        default_factory=lambda: int(os.getenv("ERP_SEARCH_DEBOUNCE_MS", "300"))
    )

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000.0


@dataclass
class Config:
    """Main application configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    financial: FinancialConfig = field(default_factory=FinancialConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    exports_dir: Path = field(default_factory=lambda: Path(os.getenv("ERP_EXPORTS_DIR", "./exports")))
    log_level: str = field(default_factory=lambda: os.getenv("ERP_LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("ERP_LOG_FILE") or None)
    log_json: bool = field(
        default_factory=lambda: os.getenv("ERP_LOG_JSON", "false").lower() in ("1", "true", "yes")
    )

    def ensure_dirs(self):
        self.exports_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_yaml(cls, path: str, base: Optional["Config"] = None) -> "Config":
        """Overlay settings from a YAML file onto the environment defaults.

        The file mirrors the dataclass layout::

            store:
              endpoint: https://store.example.com
            ui:
              search_debounce_ms: 150
            exports_dir: ./out
        """
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}", setting=str(config_path))

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping", setting=str(config_path))

        cfg = base or cls()
        _apply(cfg, data, prefix="")
        return cfg


def _apply(target, data: dict, prefix: str):
    known = {f.name: f for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            raise ConfigurationError(f"Unknown config key: {prefix}{key}", setting=f"{prefix}{key}")
        current = getattr(target, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ConfigurationError(f"Expected a mapping for {prefix}{key}", setting=f"{prefix}{key}")
            _apply(current, value, prefix=f"{prefix}{key}.")
        elif isinstance(current, Path):
            setattr(target, key, Path(value))
        else:
            setattr(target, key, value)


# Global config instance
config = Config()
