"""Configuration management utilities for the price tracker."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_SETTINGS_PATH = PROJECT_ROOT / "config" / "default_settings.json"
USER_SETTINGS_PATH = PROJECT_ROOT / "config" / "settings.local.json"

SUPPORTED_PROVIDERS = {"yahoo_chart", "yfinance"}

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class ConfigError(Exception):
    """Raised when configuration files are missing or invalid."""


@dataclass
class DataSourcesConfig:
    provider: str = "yahoo_chart"
    symbol: str = "HO=F"
    quote_url: str = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 15.0
    source_label: Optional[str] = None

    def resolved_url(self) -> str:
        return self.quote_url.replace("{symbol}", self.symbol)

    def label(self) -> str:
        return self.source_label or f"Yahoo Finance {self.symbol}"


@dataclass
class ConversionConfig:
    factor: float = 313.32
    raw_unit: str = "USD/gallon"
    target_unit: str = "USD/MT"
    decimals: int = 2


@dataclass
class StorageConfig:
    price_file: Path = Path("data/prices.json")


@dataclass
class AutomationConfig:
    enabled: bool = False
    time: str = "06:00"
    timezone: str = "UTC"


@dataclass
class PriceTrackerConfig:
    data_sources: DataSourcesConfig = field(default_factory=DataSourcesConfig)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    automation: AutomationConfig = field(default_factory=AutomationConfig)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """Loads and validates configuration data from files and environment variables."""

    def __init__(
        self,
        default_path: Path | str = DEFAULT_SETTINGS_PATH,
        user_path: Path | str = USER_SETTINGS_PATH,
        env_prefix: str = "PT_",
    ) -> None:
        self.default_path = Path(default_path)
        self.user_path = Path(user_path)
        self.env_prefix = env_prefix
        self._cached_config: Optional[PriceTrackerConfig] = None

    def load(self, force_reload: bool = False) -> PriceTrackerConfig:
        """Load configuration from defaults, user overrides, and environment."""
        if self._cached_config is not None and not force_reload:
            return self._cached_config

        base_config = self._load_default_config()
        merged_config = self._merge_user_overrides(base_config)
        merged_config = self._apply_env_overrides(merged_config)

        config = self._build_config(merged_config)
        self._validate_config(config)

        self._cached_config = config
        return config

    def clear_cache(self) -> None:
        """Clear the cached configuration instance."""
        self._cached_config = None

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------
    def _load_default_config(self) -> Dict[str, Any]:
        if not self.default_path.exists():
            raise ConfigError(f"Default configuration file not found: {self.default_path}")

        with self.default_path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Unable to parse default configuration: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError("Default configuration must be a JSON object")
        return data

    def _merge_user_overrides(self, base: Dict[str, Any]) -> Dict[str, Any]:
        data = json.loads(json.dumps(base))
        if self.user_path.exists():
            with self.user_path.open("r", encoding="utf-8") as handle:
                try:
                    overrides = json.load(handle)
                except json.JSONDecodeError as exc:
                    raise ConfigError(f"Unable to parse user configuration: {exc}") from exc
            self._deep_merge(data, overrides)
        return data

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = json.loads(json.dumps(data))
        prefix_len = len(self.env_prefix)
        for key, value in os.environ.items():
            if not key.startswith(self.env_prefix):
                continue
            path_parts = key[prefix_len:].lower().split("__")
            parsed_value = self._parse_env_value(value)
            self._set_nested_value(result, path_parts, parsed_value)
        return result

    # ------------------------------------------------------------------
    # Build dataclasses
    # ------------------------------------------------------------------
    def _build_config(self, data: Dict[str, Any]) -> PriceTrackerConfig:
        try:
            sources_data = data.get("data_sources", {})
            sources = DataSourcesConfig(**sources_data)
            sources.timeout = float(sources.timeout)

            conversion = ConversionConfig(**data.get("conversion", {}))
            conversion.factor = float(conversion.factor)
            conversion.decimals = int(conversion.decimals)

            storage_data = data.get("storage", {})
            raw_price_file = storage_data.get("price_file", StorageConfig.price_file)
            if not str(raw_price_file).strip():
                raise ConfigError("storage.price_file must be a valid path")
            price_file = Path(raw_price_file)
            if not price_file.is_absolute():
                price_file = PROJECT_ROOT / price_file
            storage = StorageConfig(price_file=price_file)

            automation_data = data.get("automation", {})
            enabled = automation_data.get("enabled", False)
            if not isinstance(enabled, bool):
                raise ConfigError(f"automation.enabled must be true or false, got {enabled!r}")
            automation = AutomationConfig(
                enabled=enabled,
                time=str(automation_data.get("time", "06:00")),
                timezone=str(automation_data.get("timezone", "UTC")),
            )
        except TypeError as exc:
            raise ConfigError(f"Invalid configuration field: {exc}") from exc
        except ValueError as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc

        return PriceTrackerConfig(
            data_sources=sources,
            conversion=conversion,
            storage=storage,
            automation=automation,
        )

    # ------------------------------------------------------------------
    # Validation & utilities
    # ------------------------------------------------------------------
    def _validate_config(self, config: PriceTrackerConfig) -> None:
        sources = config.data_sources
        if sources.provider not in SUPPORTED_PROVIDERS:
            raise ConfigError(
                f"data_sources.provider must be one of {sorted(SUPPORTED_PROVIDERS)}"
            )
        if not sources.symbol.strip():
            raise ConfigError("data_sources.symbol must not be empty")
        if sources.provider == "yahoo_chart" and not sources.quote_url.startswith(("http://", "https://")):
            raise ConfigError("data_sources.quote_url must be an http(s) URL")
        if sources.timeout <= 0:
            raise ConfigError("data_sources.timeout must be positive")

        if config.conversion.factor <= 0:
            raise ConfigError("conversion.factor must be positive")
        if config.conversion.decimals < 0:
            raise ConfigError("conversion.decimals must be >= 0")

        if not self._is_valid_time_format(config.automation.time):
            raise ConfigError("automation.time must be HH:MM or HH:MM:SS")
        if not config.automation.timezone.strip():
            raise ConfigError("automation.timezone must not be empty")
        try:
            ZoneInfo(config.automation.timezone.strip())
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"automation.timezone is not a known IANA zone: {config.automation.timezone}") from exc

    @staticmethod
    def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> None:
        for key, value in overrides.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                ConfigManager._deep_merge(base[key], value)
            else:
                base[key] = value

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        value = value.strip()
        if not value:
            return value
        lowered = value.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    @staticmethod
    def _is_valid_time_format(value: str) -> bool:
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                datetime.strptime(value, fmt)
                return True
            except ValueError:
                continue
        return False

    @staticmethod
    def _set_nested_value(target: Dict[str, Any], path_parts: list[str], value: Any) -> None:
        current = target
        for part in path_parts[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]
        current[path_parts[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return the currently cached configuration as a dictionary."""
        config = self.load()
        return config.as_dict()


__all__ = [
    "ConfigError",
    "ConfigManager",
    "PriceTrackerConfig",
    "DataSourcesConfig",
    "ConversionConfig",
    "StorageConfig",
    "AutomationConfig",
]
