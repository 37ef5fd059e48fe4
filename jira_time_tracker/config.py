"""
Configuration for the Jira Time Tracker.

Paths, the config.json file, and the OAuth app credentials. Credentials
are read from the config file first and fall back to environment
variables (JIRA_CLIENT_ID, JIRA_SECRET, JIRA_REDIRECT_URI).
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from jira_time_tracker.errors import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "JiraTimeTracker"
DEFAULT_REDIRECT_URI = "http://localhost:8765/callback"


def app_dir() -> Path:
    """Return the per-user directory that holds config, storage and logs."""
    override = os.environ.get("JIRA_TIME_TRACKER_HOME")
    if override:
        return Path(override)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming"
        return Path(base) / APP_NAME
    base = os.environ.get("XDG_DATA_HOME") or (Path.home() / ".local" / "share")
    return Path(base) / APP_NAME


def config_file() -> Path:
    return app_dir() / "config.json"


def storage_dir() -> Path:
    return app_dir() / "storage"


def log_dir() -> Path:
    return app_dir() / "logs"


def load_config() -> dict:
    """Load config from file."""
    defaults = {
        "jira_client_id": "",
        "jira_client_secret": "",
        "jira_redirect_uri": DEFAULT_REDIRECT_URI,
        "sync_interval": 300,
        "reminder_check_interval": 60,
    }
    path = config_file()
    if path.exists():
        try:
            with open(path) as f:
                saved = json.load(f)
                defaults.update(saved)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load config file: {e}")
    return defaults


def save_config(config_data: dict):
    """Save config to file with restricted permissions."""
    path = config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = load_config()
    existing.update(config_data)
    with open(path, "w") as f:
        json.dump(existing, f, indent=2)
    os.chmod(path, 0o600)


def _usable(value: Optional[str]) -> bool:
    return bool(value) and not value.startswith("YOUR_")


def load_oauth_credentials() -> tuple:
    """Return (client_id, client_secret, redirect_uri) from config or environment.

    Raises ConfigError when neither source provides a client id and secret.
    """
    config = load_config()
    client_id = config.get("jira_client_id", "")
    secret = config.get("jira_client_secret", "")
    redirect_uri = config.get("jira_redirect_uri") or DEFAULT_REDIRECT_URI
    if _usable(client_id) and _usable(secret):
        logger.debug("Loaded OAuth credentials from config file")
        return client_id, secret, redirect_uri

    client_id = os.environ.get("JIRA_CLIENT_ID", "")
    secret = os.environ.get("JIRA_SECRET", "")
    redirect_uri = os.environ.get("JIRA_REDIRECT_URI", "") or redirect_uri
    if _usable(client_id) and _usable(secret):
        logger.debug("Loaded OAuth credentials from environment")
        return client_id, secret, redirect_uri

    raise ConfigError(
        "Jira OAuth credentials not set. Add jira_client_id and jira_client_secret "
        f"to {config_file()} or set JIRA_CLIENT_ID and JIRA_SECRET."
    )


def setup_logging(log_name: str, verbose: bool = False, console_level: int = logging.INFO):
    """Log to LOG_DIR/<log_name>.log and to the console."""
    directory = log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else console_level)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(directory / f"{log_name}.log"),
            console,
        ],
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
