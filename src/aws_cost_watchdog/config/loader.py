"""Configuration loader for AWS Cost Watchdog."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import ValidationError

from aws_cost_watchdog.config.schema import Config, PricingConfig
from aws_cost_watchdog.exceptions import ConfigurationError


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir() -> Path:
    """Find the config directory, searching up from current directory."""
    if config_dir := os.environ.get("CONFIG_DIR"):
        return Path(config_dir)

    current = Path.cwd()
    while current != current.parent:
        config_path = current / "config"
        if config_path.is_dir():
            return config_path
        current = current.parent

    return Path("config")


def _read_yaml(path: Path) -> dict:
    """Read a YAML mapping, returning an empty dict for empty files."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot read {path}: {e}", code="config_unreadable", details={"path": str(path)}
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{path} must contain a mapping", code="config_invalid", details={"path": str(path)}
        )
    return data


def load_config(
    config_path: str | Path | None = None,
    environment: str | None = None,
) -> Config:
    """
    Load configuration from YAML files.

    Loads config.yaml as base, then merges environment-specific overrides
    (e.g., config.dev.yaml, config.prod.yaml). A ``pricing.yaml`` next to the
    config files replaces the built-in price tables.

    Args:
        config_path: Path to config directory. If None, searches for config/ directory.
        environment: Environment name (dev, staging, prod). If None, uses CONFIG_ENV
                    environment variable or defaults to 'dev'.

    Returns:
        Config: Validated configuration object.
    """
    config_dir = Path(config_path) if config_path else _find_config_dir()
    environment = environment or os.environ.get("CONFIG_ENV", "dev")

    config_data: dict = {}

    base_config_path = config_dir / "config.yaml"
    if base_config_path.exists():
        config_data = _read_yaml(base_config_path)

    env_config_path = config_dir / f"config.{environment}.yaml"
    if env_config_path.exists():
        config_data = _deep_merge(config_data, _read_yaml(env_config_path))

    pricing_path = config_dir / "pricing.yaml"
    if pricing_path.exists():
        config_data = _deep_merge(config_data, {"pricing": _read_yaml(pricing_path)})

    config_data = _apply_env_overrides(config_data)
    config_data["environment"] = environment

    return Config(**config_data)


def load_pricing(pricing_path: str | Path) -> PricingConfig:
    """
    Load price tables from a standalone YAML file.

    Lets pricing be refreshed without touching detector configuration.

    Args:
        pricing_path: Path to a YAML file shaped like PricingConfig.

    Returns:
        PricingConfig: Validated price tables.
    """
    path = Path(pricing_path)
    if not path.exists():
        raise ConfigurationError(
            f"Pricing file not found: {path}", code="pricing_missing", details={"path": str(path)}
        )

    try:
        return PricingConfig(**_read_yaml(path))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid pricing file {path}: {e}", code="pricing_invalid", details={"path": str(path)}
        ) from e


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration."""
    env_mappings = {
        "AWS_REGION": ("aws", "region"),
        "AWS_ACCOUNT_ID": ("aws", "account_id"),
        "DEMO_MODE": ("aggregator", "demo_mode"),
        "DETECTOR_TIMEOUT_SECONDS": ("aggregator", "detector_timeout_seconds"),
        "LOG_LEVEL": ("logging", "level"),
        "MONTHLY_BUDGET": (
            "detectors",
            "cost_anomaly",
            "thresholds",
            "monthly_budget_limit",
        ),
    }

    for env_var, path in env_mappings.items():
        if value := os.environ.get(env_var):
            current = config_data
            for key in path[:-1]:
                current = current.setdefault(key, {})

            final_key = path[-1]
            if final_key in ("monthly_budget_limit", "detector_timeout_seconds"):
                current[final_key] = float(value)
            elif final_key in ("demo_mode",):
                current[final_key] = value.lower() in ("true", "1", "yes")
            elif final_key == "level":
                current[final_key] = value.upper()
            else:
                current[final_key] = value

    return config_data


@lru_cache(maxsize=1)
def get_cached_config() -> Config:
    """
    Get cached configuration singleton.

    Avoids re-reading YAML for every analysis run in long-lived processes.
    """
    return load_config()
