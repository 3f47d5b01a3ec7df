import json
import os
import urllib.parse
from typing import Any, Dict, Tuple

CONFIG_PATH = "config.json"

LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify Web API (OAuth PKCE)
    # Empty client id falls back to the built-in public one (see spotify_api.auth).
    "spotify_client_id": "",
    "spotify_redirect_uri": "http://127.0.0.1:8888/callback",
    "spotify_scopes": ["user-library-read"],
    "auth_timeout_seconds": 120,
    "open_browser": True,

    # Liked Songs fetch
    "fetch_page_size": 50,
    "fetch_delay_ms": 100,
    "spotify_max_retries": 0,
    "spotify_backoff_base": 1.0,
    "spotify_request_timeout": 30.0,
    "auto_fetch_on_callback": False,

    # App behavior
    "mode": "web",
    "export_dir": "exports",
    "log_dir": "logs",
    "log_level": "INFO",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": True, "element_type": str},
    "auth_timeout_seconds": {"type": int, "required": False, "min": 10, "max": 3600},
    "open_browser": {"type": bool, "required": False},

    "fetch_page_size": {"type": int, "required": False, "min": 1, "max": 50},
    "fetch_delay_ms": {"type": int, "required": False, "min": 0, "max": 10000},
    "spotify_max_retries": {"type": int, "required": False, "min": 0, "max": 10},
    "spotify_backoff_base": {"type": (int, float), "required": False, "min": 0.1, "max": 30.0},
    "spotify_request_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
    "auto_fetch_on_callback": {"type": bool, "required": False},

    "mode": {"type": str, "required": False, "choices": ["web", "cli"]},
    "export_dir": {"type": str, "required": False},
    "log_dir": {"type": str, "required": False},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a JSON object.")

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def default_config() -> Dict[str, Any]:
    return json.loads(json.dumps(DEFAULT_CONFIG))


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> bool:
    """Save configuration to file."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except OSError as e:
        raise IOError(f"Failed to save config: {e}")


def parse_redirect_uri(redirect_uri: str) -> Tuple[str, int, str]:
    """
    Split a loopback redirect URI into (host, port, path).
    Raises ValueError when the URI is not http on a loopback host with an explicit port.
    """
    parsed = urllib.parse.urlparse(str(redirect_uri or "").strip())
    if parsed.scheme != "http":
        raise ValueError(f"Redirect URI must use http, got '{redirect_uri}'")
    if parsed.hostname not in LOOPBACK_HOSTS:
        raise ValueError(f"Redirect URI must point at a loopback address, got '{redirect_uri}'")
    if parsed.port is None:
        raise ValueError(f"Redirect URI must include a port, got '{redirect_uri}'")
    return parsed.hostname, parsed.port, parsed.path or "/"


def server_address(config: Dict[str, Any]) -> Tuple[str, int]:
    """Host and port the local server must bind so Spotify's redirect reaches it."""
    host, port, _ = parse_redirect_uri(config.get("spotify_redirect_uri", ""))
    return host, port


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; don't let True pass as a page size.
        expected_type = rules.get("type")
        if isinstance(value, bool) and expected_type is not bool:
            errors.append(f"Field '{key}' must not be a boolean")
            continue

        # Type check
        if expected_type and not isinstance(value, expected_type):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    if isinstance(config.get("spotify_redirect_uri"), str):
        try:
            parse_redirect_uri(config["spotify_redirect_uri"])
        except ValueError as e:
            errors.append(str(e))

    return len(errors) == 0, errors
