"""
Configuration management for carscout.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from carscout.utils.dotenv import load_dotenv_if_present


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "carscout"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str = "logs"
    log_to_file: bool = False
    json_logs: bool = True


class MarketplaceConfig(BaseModel):
    """Marketplace endpoint configuration.

    The data endpoint path embeds a build identifier that the origin rotates
    silently; `default_build_id` is only the starting value.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    origin: str = "https://www.yad2.co.il"
    data_path_template: str = "/vehicles/_next/data/{build_id}/cars.json"
    landing_path: str = "/vehicles/cars"
    default_build_id: str = "XZtxUuCfNGmC7Q_lRtO6g"
    default_hand: str = "0-1"
    price_floor: str = "4000--1"
    request_timeout: float = 30.0
    impersonate: str = "chrome"
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
    )
    accept_language: str = "en-US,en;q=0.9,he;q=0.8"
    sec_ch_ua: str = '"Not;A=Brand";v="99", "Google Chrome";v="139", "Chromium";v="139"'
    sec_ch_ua_platform: str = '"macOS"'

    @property
    def landing_url(self) -> str:
        return f"{self.origin}{self.landing_path}"


class RelayConfig(BaseModel):
    """Proxy relay configuration.

    The relay is only used when both token and zone are configured.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    endpoint: str = "https://api.brightdata.com/request"
    token: str | None = None
    zone: str | None = None
    country: str = "IL"
    timeout: float = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.zone)


class RetryConfig(BaseModel):
    """Per-channel retry configuration."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=2, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    direct_multiplier: float = Field(default=1.0, ge=0.0)
    proxy_multiplier: float = Field(default=2.0, ge=0.0)


class StrategyConfig(BaseModel):
    """Adaptive channel-order configuration."""

    model_config = ConfigDict(extra="forbid")

    direct_failure_threshold: int = Field(default=3, ge=1)
    direct_success_max_age_seconds: float = Field(default=3600.0, gt=0.0)
    proxy_ema_alpha: float = Field(default=0.1, gt=0.0, le=1.0)
    initial_proxy_success_rate: float = Field(default=1.0, ge=0.0, le=1.0)


class CacheConfig(BaseModel):
    """Response cache configuration."""

    ttl_seconds: float = Field(default=3600.0, gt=0.0)


class SignatureConfig(BaseModel):
    """Extra blocking signature declared in configuration."""

    pattern: str
    label: str
    hard: bool = False


class BlockingConfig(BaseModel):
    """Blocking detector configuration."""

    extra_signatures: list[SignatureConfig] = Field(default_factory=list)


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    marketplace: MarketplaceConfig = Field(default_factory=MarketplaceConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    blocking: BlockingConfig = Field(default_factory=BlockingConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides.

    local.yaml keeps machine-specific overrides out of version control.
    Its `settings` key is deep-merged over settings.yaml.

    Example local.yaml:
        settings:
          relay:
            zone: my_unlocker_zone

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _load_yaml_file(config_dir / "settings.yaml")
    local_overrides = _load_yaml_file(config_dir / "local.yaml")
    if "settings" in local_overrides:
        config = _deep_merge(config, local_overrides["settings"])
    return config


def _apply_env_overrides(config: dict[str, Any], prefix: str = "CARSCOUT_") -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with CARSCOUT_ and use
    double underscores for nested keys.

    Example:
        CARSCOUT_GENERAL__LOG_LEVEL=DEBUG
        CARSCOUT_RELAY__TOKEN=...

    Args:
        config: Configuration dictionary.
        prefix: Environment variable prefix.

    Returns:
        Configuration with environment overrides.
    """
    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == f"{prefix}CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        # Kept as text: pydantic converts per field type, so "0123" stays "0123"
        # in a string field and becomes 123 in an int field
        current[key_path[-1]] = value

    return config


def load_settings(config_dir: Path | None = None) -> Settings:
    """Build settings from defaults, YAML files and the environment.

    Args:
        config_dir: Configuration directory. Uses CARSCOUT_CONFIG_DIR if None.

    Returns:
        Settings instance.
    """
    load_dotenv_if_present()

    if config_dir is None:
        config_dir = Path(os.environ.get("CARSCOUT_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)
    return Settings(**config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    return load_settings()


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at carscout/utils/config.py
    return Path(__file__).parent.parent.parent
