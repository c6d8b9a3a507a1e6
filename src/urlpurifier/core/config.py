"""Configuration loader for urlpurifier.

This module provides functions to load and validate the YAML settings file
and the JSON rule database.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from urlpurifier.core.constants import (
    DEFAULTS,
    HASH_URL,
    RULES_URL,
    InstancePickMode,
)
from urlpurifier.core.exceptions import ConfigError
from urlpurifier.core.models import CleanOptions, RuleSet, Service


# ============================================================================
# Configuration Paths
# ============================================================================

def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/urlpurifier
    """
    return Path.home() / ".config" / "urlpurifier"


def get_default_config_path() -> Path:
    return get_config_dir() / "config.yaml"


# ============================================================================
# Settings Model
# ============================================================================

@dataclass
class PurifierSettings:
    """User settings for cleaning, redirecting and rule synchronization."""
    rules_url: str = RULES_URL
    hash_url: str = HASH_URL
    cache_dir: Path = field(default_factory=lambda: Path(DEFAULTS["cache_dir"]).expanduser())
    referral_marketing_excluded: bool = DEFAULTS["referral_marketing_excluded"]
    domain_blocking: bool = DEFAULTS["domain_blocking"]
    apply_redirect_providers: bool = DEFAULTS["apply_redirect_providers"]
    instance_pick_mode: InstancePickMode = InstancePickMode(DEFAULTS["instance_pick_mode"])
    max_passes: int = DEFAULTS["max_passes"]
    timeout: int = DEFAULTS["timeout"]
    services: list[Service] = field(default_factory=list)

    def clean_options(self, **overrides: Any) -> CleanOptions:
        """Build per-call cleaning options from these settings."""
        options = {
            "apply_redirect_providers": self.apply_redirect_providers,
            "referral_marketing_excluded": self.referral_marketing_excluded,
            "domain_blocking": self.domain_blocking,
        }
        options.update(overrides)
        return CleanOptions(**options)


# ============================================================================
# Settings Loader
# ============================================================================

_BOOL_KEYS = ("referral_marketing_excluded", "domain_blocking", "apply_redirect_providers")
_STR_KEYS = ("rules_url", "hash_url")
_INT_KEYS = ("max_passes", "timeout")


def load_settings(config_file: Path | str | None = None) -> PurifierSettings:
    """Load settings from a YAML file.

    Args:
        config_file: Path to settings YAML. If None, the default location is
            used and a missing file yields default settings.

    Returns:
        PurifierSettings with validated values

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    if config_file is None:
        config_path = get_default_config_path()
        if not config_path.exists():
            return PurifierSettings()
    else:
        config_path = Path(config_file)

    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config YAML: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {e}") from e

    if data is None:
        return PurifierSettings()

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    return settings_from_dict(data)


def settings_from_dict(data: dict[str, Any]) -> PurifierSettings:
    """Validate a settings mapping.

    Raises:
        ConfigError: If a value has the wrong type or is out of range
    """
    kwargs: dict[str, Any] = {}

    for key in _BOOL_KEYS:
        if key in data:
            if not isinstance(data[key], bool):
                raise ConfigError(f"'{key}' must be true or false")
            kwargs[key] = data[key]

    for key in _STR_KEYS:
        if key in data:
            if not isinstance(data[key], str) or not data[key]:
                raise ConfigError(f"'{key}' must be a non-empty string")
            kwargs[key] = data[key]

    for key in _INT_KEYS:
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"'{key}' must be a positive integer")
            kwargs[key] = value

    if "cache_dir" in data:
        kwargs["cache_dir"] = Path(str(data["cache_dir"])).expanduser()

    if "instance_pick_mode" in data:
        try:
            kwargs["instance_pick_mode"] = InstancePickMode(data["instance_pick_mode"])
        except ValueError as e:
            modes = ", ".join(mode.value for mode in InstancePickMode)
            raise ConfigError(
                f"Invalid instance_pick_mode '{data['instance_pick_mode']}'. Use one of: {modes}"
            ) from e

    if "services" in data:
        kwargs["services"] = load_services(data["services"])

    return PurifierSettings(**kwargs)


def load_services(data: Any) -> list[Service]:
    """Parse a list of ``{type, instances}`` service entries.

    Raises:
        ConfigError: If an entry is malformed
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError("'services' must be a list")

    services = []
    for entry in data:
        if not isinstance(entry, dict) or "type" not in entry:
            raise ConfigError(f"Invalid service entry: {entry!r}")
        instances = entry.get("instances", [])
        if not isinstance(instances, list) or not all(isinstance(i, str) for i in instances):
            raise ConfigError(f"Service '{entry['type']}': 'instances' must be a list of strings")
        services.append(Service(type=str(entry["type"]), instances=tuple(instances)))

    return services


# ============================================================================
# Rule Database Loader
# ============================================================================

def load_ruleset_file(rules_file: Path | str) -> RuleSet:
    """Load a JSON rule database from disk.

    Raises:
        ConfigError: If the file is missing or not valid JSON
        RuleSetError: If the JSON is not a valid rule database
    """
    rules_path = Path(rules_file)

    if not rules_path.exists():
        raise ConfigError(f"Rules file not found: {rules_path}")

    try:
        data = json.loads(rules_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse rules JSON: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read rules file: {e}") from e

    return RuleSet.from_dict(data)
