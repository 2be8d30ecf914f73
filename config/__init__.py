"""Configuration management."""
import os
import yaml
from pathlib import Path

_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"
DEFAULT_RULES_PATH = Path(__file__).parent / "default_rules.yaml"

# Environment variable → (section, key)
ENV_OVERRIDES = {
    "STOCKALERT_DB_PATH": ("database", "path"),
    "STOCKALERT_CHECK_INTERVAL": ("monitor", "interval_minutes"),
    "STOCKALERT_LOG_LEVEL": ("logging", "level"),
    "STOCKALERT_EMAIL_RECIPIENTS": ("recipients", "email"),
    "STOCKALERT_PHONE_RECIPIENTS": ("recipients", "phone"),
}
_LIST_KEYS = {("recipients", "email"), ("recipients", "phone")}


def load_config(path=None):
    """Packaged defaults, deep-merged with an optional user YAML, then env overrides. Raises ValueError if invalid."""
    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            config = _deep_merge(config, yaml.safe_load(f) or {})

    _apply_env_overrides(config, os.environ)
    _validate_config(config)
    return config


def _apply_env_overrides(config, environ):
    for env_key, (section, key) in ENV_OVERRIDES.items():
        val = environ.get(env_key)
        if val:
            config.setdefault(section, {})[key] = _coerce((section, key), val)


def _coerce(config_path, val):
    """Comma lists for recipient keys; otherwise int, then float, then the raw string."""
    if config_path in _LIST_KEYS:
        return [v.strip() for v in val.split(",") if v.strip()]
    for cast in (int, float):
        try:
            return cast(val)
        except ValueError:
            continue
    return val


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _positive(value, number_types):
    return isinstance(value, number_types) and not isinstance(value, bool) and value > 0


def _validate_config(config):
    required_sections = ["monitor", "alerts", "recipients", "email", "sms", "notifications", "database"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    if not _positive(config["monitor"].get("interval_minutes"), (int, float)):
        raise ValueError("monitor.interval_minutes must be a positive number")

    for section, key in (("alerts", "history_limit"), ("notifications", "in_app_limit"),
                         ("notifications", "history_limit")):
        if not _positive(config[section].get(key), int):
            raise ValueError(f"{section}.{key} must be a positive integer")

    if not _positive(config["notifications"].get("channel_timeout_seconds"), (int, float)):
        raise ValueError("notifications.channel_timeout_seconds must be a positive number")

    for key in ("email", "phone"):
        if not isinstance(config["recipients"].get(key) or [], list):
            raise ValueError(f"recipients.{key} must be a list")
