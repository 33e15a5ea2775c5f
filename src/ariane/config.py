import os
import re
import logging
from pathlib import Path

import dotenv
import yaml

dotenv.load_dotenv()


def _read_server_config_file(path: str) -> dict:
    config_path = Path(path)
    if not config_path.is_file():
        return {}
    with config_path.open() as fh:
        data = yaml.safe_load(fh)
    return data or {}


def _lookup(data: dict, *keys):
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)?$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


def parse_duration(value, default: float) -> float:
    """Seconds from a number or a duration string like ``30s``, ``1m`` or ``500ms``."""
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    m = _DURATION_RE.match(str(value).strip())
    if m is None:
        return default
    return float(m.group(1)) * _DURATION_UNITS[m.group(2)]


def parse_port(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


SERVER_CONFIG_PATH = os.environ.get("ARIANE_SERVER_CONFIG", "server-config.yaml")
_file_config = _read_server_config_file(SERVER_CONFIG_PATH)

GITHUB_WEBHOOK_SECRET = os.environ.get(
    "GITHUB_WEBHOOK_SECRET", _lookup(_file_config, "github", "app", "webhook_secret")
)
GITHUB_PRIVATE_KEY = os.environ.get(
    "GITHUB_PRIVATE_KEY", _lookup(_file_config, "github", "app", "private_key")
)
if GITHUB_PRIVATE_KEY is not None:
    GITHUB_PRIVATE_KEY = GITHUB_PRIVATE_KEY.replace("\\n", "\n")
GITHUB_APP_ID = int(
    os.environ.get(
        "GITHUB_APP_ID", _lookup(_file_config, "github", "app", "integration_id") or 0
    )
)
GITHUB_V3_API_URL = os.environ.get(
    "GITHUB_V3_API_URL",
    _lookup(_file_config, "github", "v3_api_url") or "https://api.github.com",
)

SERVER_ADDRESS = os.environ.get(
    "ARIANE_SERVER_ADDRESS", _lookup(_file_config, "server", "address") or "127.0.0.1"
)
SERVER_PORT = parse_port(
    os.environ.get("ARIANE_SERVER_PORT", _lookup(_file_config, "server", "port")), 8080
)

# delay between re-running the Commit Status Start job and re-running failed jobs
RUN_DELAY = parse_duration(
    os.environ.get("ARIANE_RUN_DELAY", _lookup(_file_config, "runDelay")), 30.0
)

VERSION = os.environ.get(
    "ARIANE_VERSION", _lookup(_file_config, "version") or "0.0.1-dirty"
)

WEBHOOK_ROUTE = os.environ.get("WEBHOOK_ROUTE", "/api/github/hook")

OVERRIDE_LOGGING = logging.getLevelName(os.environ.get("OVERRIDE_LOGGING", "WARNING"))

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")

OVERRIDE_CONFIG = os.environ.get("OVERRIDE_CONFIG")

ACCESS_TOKEN_TTL = float(os.environ.get("ACCESS_TOKEN_TTL", 300))

DRY_RUN = os.environ.get("DRY_RUN", "false") == "true"
